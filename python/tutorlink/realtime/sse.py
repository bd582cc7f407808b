"""Server-sent event framing for realtime subscriptions.

Wire format per change:

    id: <seq>
    event: change
    data: {"channel": ..., "table": ..., "type": ..., "record": {...}, "seq": N}

A "ready" event opens every stream and ": keepalive" comments are sent
while the channel is idle. Each keepalive tick also releases events
held behind a gap that has timed out. Browsers resend the last id as
Last-Event-ID on reconnect, which the route turns back into after_seq.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from tutorlink.logging import get_logger
from tutorlink.realtime.events import ChangeEvent
from tutorlink.realtime.hub import Subscription

logger = get_logger(__name__)

KEEPALIVE = ": keepalive\n\n"


def format_sse_event(event: str, data: dict[str, Any], event_id: int | None = None) -> str:
    """Format data as an SSE event."""
    prefix = f"id: {event_id}\n" if event_id is not None else ""
    return f"{prefix}event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def parse_last_event_id(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        seq = int(value.strip())
    except ValueError:
        return None
    return seq if seq >= 0 else None


def queue_callback(
    loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[ChangeEvent]"
) -> Callable[[ChangeEvent], None]:
    """Hub callback that hands events from publisher threads to the event loop."""

    def on_event(event: ChangeEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    return on_event


async def event_stream(
    subscription: Subscription,
    queue: "asyncio.Queue[ChangeEvent]",
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_s: float = 15.0,
) -> AsyncIterator[str]:
    """Yield SSE frames until the client goes away; always unsubscribes."""
    try:
        yield format_sse_event(
            "ready", {"channel": subscription.channel, "last_seq": subscription.last_seq}
        )
        while not await is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_s)
            except asyncio.TimeoutError:
                subscription.flush_expired()
                yield KEEPALIVE
                continue
            yield format_sse_event("change", event.to_dict(), event_id=event.seq)
    except asyncio.CancelledError:
        logger.info("realtime_stream_cancelled", channel=subscription.channel)
        raise
    finally:
        subscription.unsubscribe()
        logger.info("realtime_stream_closed", channel=subscription.channel)
