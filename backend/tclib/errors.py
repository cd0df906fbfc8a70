"""Error types raised by the Team Console core."""


class InvalidArgument(ValueError):
    """A caller passed a malformed date, month or composite key."""


class InvalidConfig(ValueError):
    """Configuration snapshot is ambiguous or inconsistent."""
