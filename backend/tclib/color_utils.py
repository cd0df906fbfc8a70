"""Color helpers for catalog labels (stored as ``#RRGGBB`` strings)."""
import re

from .models import NEUTRAL_COLOR

_HEX_RE = re.compile(r'^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def normalize_hex(color) -> str:
    """Return ``#RRGGBB`` (upper-case), or the neutral color if unparsable."""
    if not isinstance(color, str):
        return NEUTRAL_COLOR.upper()
    m = _HEX_RE.match(color.strip())
    if not m:
        return NEUTRAL_COLOR.upper()
    digits = m.group(1)
    if len(digits) == 3:
        digits = ''.join(c * 2 for c in digits)
    return f"#{digits.upper()}"


def hex_to_rgb(color: str) -> tuple:
    """Convert a hex color string to an (R, G, B) tuple."""
    digits = normalize_hex(color)[1:]
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def is_light_color(color: str) -> bool:
    """Returns True if the color is light (use dark text on it)."""
    r, g, b = hex_to_rgb(color)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return luminance > 0.5


def with_alpha(color: str, alpha: int) -> str:
    """Append an alpha byte, e.g. a 12% tint for grid cell backgrounds."""
    alpha = max(0, min(255, int(alpha)))
    return f"{normalize_hex(color)}{alpha:02X}"
