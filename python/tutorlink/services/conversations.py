"""Direct conversation and message service layer.

A conversation is an unordered pair of users. The pair is stored sorted
(user_low_id, user_high_id) under a unique constraint, so create-or-get is
idempotent even when two first calls race: the loser's insert fails inside
a savepoint and it re-reads the winner's row.

All operations:
- Enforce participant-only access
- Use E_CONVERSATION_NOT_FOUND for non-participants (prevent probing)
- Order messages by server-assigned seq

Service functions correspond 1:1 with route handlers.
"""

import base64
import json
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tutorlink.db.models import Conversation, ConversationParticipant, Message
from tutorlink.db.session import transaction
from tutorlink.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from tutorlink.logging import get_logger
from tutorlink.realtime.channels import conversations_channel, messages_channel
from tutorlink.realtime.events import ChangeType
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.schemas.common import PageInfo
from tutorlink.schemas.conversation import ConversationOut, MessageOut, ParticipantOut
from tutorlink.services.notify import notify
from tutorlink.services.profiles import get_profile_model
from tutorlink.services.seq import assign_next_message_seq

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 100


# =============================================================================
# Cursor Encoding/Decoding
# =============================================================================


def encode_seq_cursor(seq: int) -> str:
    """Encode a message cursor.

    Cursor payload: {"seq": <int>}
    Encoding: base64url without padding
    """
    json_bytes = json.dumps({"seq": seq}).encode("utf-8")
    return base64.urlsafe_b64encode(json_bytes).decode("ascii").rstrip("=")


def decode_seq_cursor(cursor: str) -> int:
    """Decode a message cursor.

    Raises:
        InvalidRequestError(E_INVALID_CURSOR): If cursor is malformed.
    """
    try:
        padding = 4 - len(cursor) % 4
        if padding != 4:
            cursor += "=" * padding
        payload = json.loads(base64.urlsafe_b64decode(cursor).decode("utf-8"))
        seq = int(payload["seq"])
    except (ValueError, KeyError, TypeError):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CURSOR, "Invalid cursor") from None
    if seq < 0:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CURSOR, "Invalid cursor")
    return seq


def clamp_limit(limit: int) -> int:
    """Clamp limit to valid range [MIN_LIMIT, MAX_LIMIT]."""
    return min(max(limit, MIN_LIMIT), MAX_LIMIT)


# =============================================================================
# Helper Functions
# =============================================================================


def sorted_pair(user_id: UUID, other_id: UUID) -> tuple[UUID, UUID]:
    return (user_id, other_id) if user_id < other_id else (other_id, user_id)


def _find_by_pair(db: Session, low: UUID, high: UUID) -> Conversation | None:
    return db.scalars(
        select(Conversation).where(
            Conversation.user_low_id == low, Conversation.user_high_id == high
        )
    ).one_or_none()


def get_conversation_for_participant_or_404(
    db: Session, viewer_id: UUID, conversation_id: UUID
) -> Conversation:
    """Load a conversation the viewer takes part in.

    Missing and not-a-participant both raise E_CONVERSATION_NOT_FOUND.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None or viewer_id not in (
        conversation.user_low_id,
        conversation.user_high_id,
    ):
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def _last_message(db: Session, conversation_id: UUID) -> Message | None:
    return db.scalars(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.seq.desc())
        .limit(1)
    ).first()


def conversation_to_out(
    conversation: Conversation, last_message: Message | None = None
) -> ConversationOut:
    return ConversationOut(
        id=conversation.id,
        participants=[ParticipantOut.model_validate(p) for p in conversation.participants],
        last_message=MessageOut.model_validate(last_message) if last_message else None,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


# =============================================================================
# Service Functions
# =============================================================================


def create_or_get_conversation(
    db: Session, user_id: UUID, other_id: UUID, hub: RealtimeHub | None = None
) -> ConversationOut:
    """Return the conversation for the unordered pair, creating it if needed.

    Usernames are resolved from profiles, never taken from the caller.

    Raises:
        InvalidRequestError: If user_id == other_id.
        NotFoundError(E_PROFILE_NOT_FOUND): Either user has no profile.
    """
    if user_id == other_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Cannot start a conversation with yourself"
        )

    me = get_profile_model(db, user_id)
    other = get_profile_model(db, other_id)
    low, high = sorted_pair(user_id, other_id)

    existing = _find_by_pair(db, low, high)
    if existing is not None:
        return conversation_to_out(existing, _last_message(db, existing.id))

    conversation = Conversation(user_low_id=low, user_high_id=high)
    conversation.participants = [
        ConversationParticipant(user_id=me.user_id, username=me.username),
        ConversationParticipant(user_id=other.user_id, username=other.username),
    ]

    created = False
    with transaction(db):
        try:
            with db.begin_nested():
                db.add(conversation)
                db.flush()
            created = True
        except IntegrityError:
            # Lost the race: the pair was inserted concurrently
            logger.info("conversation_create_race_lost", user_low_id=str(low))

    if not created:
        conversation = _find_by_pair(db, low, high)
        if conversation is None:
            raise RuntimeError("Conversation missing after unique-pair conflict")
        return conversation_to_out(conversation, _last_message(db, conversation.id))

    out = conversation_to_out(conversation)
    logger.info("conversation_created", conversation_id=str(conversation.id))
    for participant_id in (low, high):
        notify(hub, conversations_channel(participant_id), "conversations", ChangeType.INSERT, out)
    return out


def get_conversation(db: Session, viewer_id: UUID, conversation_id: UUID) -> ConversationOut:
    conversation = get_conversation_for_participant_or_404(db, viewer_id, conversation_id)
    return conversation_to_out(conversation, _last_message(db, conversation.id))


def list_conversations(db: Session, viewer_id: UUID) -> list[ConversationOut]:
    """The viewer's conversations with participants and last message, most recent first."""
    conversations = db.scalars(
        select(Conversation)
        .join(ConversationParticipant)
        .where(ConversationParticipant.user_id == viewer_id)
        .options(selectinload(Conversation.participants))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .execution_options(populate_existing=True)
    ).all()
    if not conversations:
        return []

    # one query for every conversation's highest seq
    latest = (
        select(Message.conversation_id, func.max(Message.seq).label("max_seq"))
        .where(Message.conversation_id.in_([c.id for c in conversations]))
        .group_by(Message.conversation_id)
        .subquery()
    )
    last_messages = {
        m.conversation_id: m
        for m in db.scalars(
            select(Message).join(
                latest,
                (Message.conversation_id == latest.c.conversation_id)
                & (Message.seq == latest.c.max_seq),
            )
        )
    }
    return [conversation_to_out(c, last_messages.get(c.id)) for c in conversations]


def send_message(
    db: Session,
    conversation_id: UUID,
    sender_id: UUID,
    content: str,
    hub: RealtimeHub | None = None,
) -> MessageOut:
    """Append a message to a conversation.

    One transaction locks the conversation row, assigns the next seq,
    inserts the message and bumps updated_at. Subscribers are notified on
    messages:{conversation} and on both participants' conversations channel.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing or sender not a participant.
    """
    conversation = get_conversation_for_participant_or_404(db, sender_id, conversation_id)
    sender_username = next(
        p.username for p in conversation.participants if p.user_id == sender_id
    )

    with transaction(db):
        seq = assign_next_message_seq(db, conversation_id)
        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_username=sender_username,
            content=content,
            seq=seq,
        )
        db.add(message)
        db.flush()

    db.refresh(conversation)
    out = MessageOut.model_validate(message)
    logger.info("message_sent", conversation_id=str(conversation_id), seq=seq)

    notify(hub, messages_channel(conversation_id), "messages", ChangeType.INSERT, out)
    summary = conversation_to_out(conversation, message)
    for participant_id in (conversation.user_low_id, conversation.user_high_id):
        notify(
            hub,
            conversations_channel(participant_id),
            "conversations",
            ChangeType.UPDATE,
            summary,
        )
    return out


def list_messages(
    db: Session,
    viewer_id: UUID,
    conversation_id: UUID,
    limit: int = DEFAULT_LIMIT,
    cursor: str | None = None,
) -> tuple[list[MessageOut], PageInfo]:
    """List messages oldest first (seq ASC).

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing or viewer not a participant.
        InvalidRequestError(E_INVALID_CURSOR): Malformed cursor.
    """
    get_conversation_for_participant_or_404(db, viewer_id, conversation_id)
    limit = clamp_limit(limit)

    stmt = select(Message).where(Message.conversation_id == conversation_id)
    if cursor:
        stmt = stmt.where(Message.seq > decode_seq_cursor(cursor))
    rows = list(db.scalars(stmt.order_by(Message.seq.asc()).limit(limit + 1)))

    has_more = len(rows) > limit
    rows = rows[:limit]
    messages = [MessageOut.model_validate(m) for m in rows]

    next_cursor = encode_seq_cursor(messages[-1].seq) if has_more and messages else None
    return messages, PageInfo(next_cursor=next_cursor)
