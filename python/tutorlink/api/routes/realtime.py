"""Realtime change streams over server-sent events.

GET /realtime/{topic}/{target_id} authorizes the viewer for the channel,
subscribes to the hub and streams change events in seq order. Resume with
?after_seq=N or the Last-Event-ID header.
"""

import asyncio
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db, get_realtime_hub
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.config import get_settings
from tutorlink.logging import set_channel
from tutorlink.realtime.channels import Topic
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.realtime.sse import event_stream, parse_last_event_id, queue_callback
from tutorlink.services import subscriptions as subscriptions_service

router = APIRouter(tags=["realtime"])


def get_authorized_channel(
    topic: Topic,
    target_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> str:
    """Runs in the threadpool, so the database check never blocks the loop."""
    return subscriptions_service.authorize_channel(db, viewer.user_id, topic, target_id)


@router.get("/realtime/{topic}/{target_id}")
async def stream_changes(
    request: Request,
    channel: Annotated[str, Depends(get_authorized_channel)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
    after_seq: int | None = Query(default=None, ge=0),
    last_event_id: str | None = Header(default=None, alias="Last-Event-ID"),
) -> StreamingResponse:
    """Stream change events for one channel.

    Errors (before the stream opens):
        E_*_NOT_FOUND (404): Target missing or hidden from the viewer.
        E_FORBIDDEN family (403): Target not subscribable by the viewer.
    """
    if after_seq is None:
        after_seq = parse_last_event_id(last_event_id)
    set_channel(channel)

    queue: asyncio.Queue = asyncio.Queue()
    subscription = hub.subscribe(
        channel, queue_callback(asyncio.get_running_loop(), queue), after_seq=after_seq
    )

    return StreamingResponse(
        event_stream(
            subscription,
            queue,
            request.is_disconnected,
            keepalive_s=get_settings().realtime_keepalive_s,
        ),
        media_type="text/event-stream; charset=utf-8",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
        },
    )
