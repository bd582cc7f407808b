"""Change notification helper used by services after their commit."""

from typing import Any

from pydantic import BaseModel

from tutorlink.realtime.events import ChangeEvent, ChangeType
from tutorlink.realtime.hub import RealtimeHub


def notify(
    hub: RealtimeHub | None,
    channel: str,
    table: str,
    change_type: ChangeType,
    record: BaseModel | dict[str, Any],
) -> ChangeEvent | None:
    """Publish a row change. A None hub (scripts, some tests) is a no-op.

    MUST be called after the write has committed so subscribers never see
    rolled-back rows.
    """
    if hub is None:
        return None
    if isinstance(record, BaseModel):
        record = record.model_dump(mode="json")
    return hub.publish(channel, table, change_type, record)
