"""Server-Sent Events stream of console changes.

Writers call ``broadcast`` after a successful mutation; every connected
client receives ``planning_changed``, ``bonus_changed`` or
``training_changed`` with a small JSON payload.
"""
import asyncio
import json
import logging
import threading
from typing import AsyncGenerator, Optional
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

_logger = logging.getLogger('tcapi.events')

router = APIRouter(prefix="/api/events", tags=["Events"])

EVENT_TYPES = ('planning_changed', 'bonus_changed', 'training_changed')

_KEEPALIVE_SECONDS = 25.0

_lock = threading.Lock()
_subscribers: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []


def subscriber_count() -> int:
    with _lock:
        return len(_subscribers)


def _deliver(q: asyncio.Queue, payload: dict) -> None:
    if q.full():
        # Slow consumer: drop the oldest event
        q.get_nowait()
    q.put_nowait(payload)


def broadcast(event_type: str, data: Optional[dict] = None) -> int:
    """Queue an event for all connected clients. Safe to call from sync endpoints.

    Returns the number of clients the event was handed to.
    """
    payload = {"type": event_type, "data": data or {}}
    delivered = 0
    with _lock:
        alive = []
        for loop, q in _subscribers:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(_deliver, q, payload)
            alive.append((loop, q))
            delivered += 1
        _subscribers[:] = alive
    if delivered:
        _logger.debug("SSE broadcast: %s to %d clients", event_type, delivered)
    return delivered


def _format(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


async def _event_generator(request: Request, loop: asyncio.AbstractEventLoop,
                           queue: asyncio.Queue) -> AsyncGenerator[str, None]:
    try:
        yield _format("connected", {})
        while not await request.is_disconnected():
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=_KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _format(payload["type"], payload["data"])
    finally:
        with _lock:
            if (loop, queue) in _subscribers:
                _subscribers.remove((loop, queue))
        _logger.debug("SSE client disconnected. Remaining: %d", subscriber_count())


@router.get("", summary="SSE event stream", description=(
    "Connect to receive change notifications. Accepts `?token=` since EventSource "
    "cannot send headers.\n\n"
    "Events: `connected`, `planning_changed`, `bonus_changed`, `training_changed`"
))
async def sse_stream(request: Request):
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=50)
    with _lock:
        _subscribers.append((loop, queue))
    _logger.debug("SSE client connected. Total: %d", subscriber_count())
    return StreamingResponse(
        _event_generator(request, loop, queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
