"""Sequence assignment for ordered message feeds.

Conversations and study rooms each carry a `next_seq` counter (starts at 1).
Assignment locks the parent row FOR UPDATE, reads next_seq, increments it and
bumps updated_at. The caller inserts the message with the returned seq in the
same transaction, so seqs are gap-free and unique per parent.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tutorlink.db.models import Conversation, StudyRoom, utcnow
from tutorlink.logging import get_logger

logger = get_logger(__name__)


def _assign_next_seq(
    db: Session, model: type[Conversation] | type[StudyRoom], parent_id: UUID
) -> int:
    current_seq = db.execute(
        select(model.next_seq).where(model.id == parent_id).with_for_update()
    ).scalar_one_or_none()

    if current_seq is None:
        raise ValueError(f"{model.__tablename__} row {parent_id} not found")

    db.execute(
        update(model)
        .where(model.id == parent_id)
        .values(next_seq=model.next_seq + 1, updated_at=utcnow())
    )

    logger.debug(
        "assigned_seq", table=model.__tablename__, parent_id=str(parent_id), seq=current_seq
    )
    return current_seq


def assign_next_message_seq(db: Session, conversation_id: UUID) -> int:
    """Assign the next message seq for a conversation.

    MUST be called within an existing transaction; it does not commit.

    Raises:
        ValueError: If the conversation does not exist.
    """
    return _assign_next_seq(db, Conversation, conversation_id)


def assign_next_room_message_seq(db: Session, room_id: UUID) -> int:
    """Assign the next message seq for a study room. Same contract as above."""
    return _assign_next_seq(db, StudyRoom, room_id)
