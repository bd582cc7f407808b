"""Change event payloads."""

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A row change on one channel.

    Attributes:
        channel: Channel name, e.g. "messages:<conversation_id>".
        table: Source table name.
        type: INSERT, UPDATE or DELETE.
        record: JSON-safe row snapshot.
        seq: Per-channel sequence number assigned at publish time.
    """

    channel: str
    table: str
    type: ChangeType
    record: dict[str, Any]
    seq: int | None = None

    def with_seq(self, seq: int) -> "ChangeEvent":
        return replace(self, seq=seq)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            channel=data["channel"],
            table=data["table"],
            type=ChangeType(data["type"]),
            record=data.get("record") or {},
            seq=data.get("seq"),
        )
