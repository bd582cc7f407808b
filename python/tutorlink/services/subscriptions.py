"""Realtime subscription service layer.

Each subscribe_to_* function authorizes the viewer for one channel and
returns a cancellable Subscription from the hub. Authorization mirrors
the read rules of the owning service:

    messages:{conversation}          conversation participants
    conversations:{user}             that user only
    meetings:{user}                  that user only
    study_room_messages:{room}       room participants
    study_room_participants:{room}   anyone who can see the room
    responses:{ticket}               the ticket's student, or any tutor
"""

from uuid import UUID

from sqlalchemy.orm import Session

from tutorlink.db.models import ProfileRole, Ticket
from tutorlink.errors import ApiErrorCode, ForbiddenError, NotFoundError
from tutorlink.realtime.channels import Topic, channel_name
from tutorlink.realtime.hub import Callback, RealtimeHub, Subscription
from tutorlink.services.conversations import get_conversation_for_participant_or_404
from tutorlink.services.profiles import get_profile_model
from tutorlink.services.study_rooms import get_visible_room_or_404, require_room_participant


def _require_self(viewer_id: UUID, target_id: UUID) -> None:
    if viewer_id != target_id:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Cannot subscribe to another user's feed")


def _authorize_responses(db: Session, viewer_id: UUID, ticket_id: UUID) -> None:
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError(ApiErrorCode.E_TICKET_NOT_FOUND, "Ticket not found")
    if ticket.student_id == viewer_id:
        return
    profile = get_profile_model(db, viewer_id)
    if profile.role != ProfileRole.tutor.value:
        raise ForbiddenError(ApiErrorCode.E_NOT_TICKET_OWNER, "Not your ticket")


def authorize_channel(db: Session, viewer_id: UUID, topic: Topic, target_id: UUID) -> str:
    """Check the viewer may follow topic/target_id and return the channel name.

    Raises:
        NotFoundError: Target missing or hidden from the viewer.
        ForbiddenError: Target visible but not subscribable by the viewer.
    """
    topic = Topic(topic)
    if topic is Topic.messages:
        get_conversation_for_participant_or_404(db, viewer_id, target_id)
    elif topic in (Topic.conversations, Topic.meetings):
        _require_self(viewer_id, target_id)
    elif topic is Topic.study_room_messages:
        room = get_visible_room_or_404(db, viewer_id, target_id)
        require_room_participant(db, room, viewer_id)
    elif topic is Topic.study_room_participants:
        get_visible_room_or_404(db, viewer_id, target_id)
    elif topic is Topic.responses:
        _authorize_responses(db, viewer_id, target_id)
    return channel_name(topic, target_id)


def subscribe(
    db: Session,
    hub: RealtimeHub,
    viewer_id: UUID,
    topic: Topic,
    target_id: UUID,
    callback: Callback,
    after_seq: int | None = None,
) -> Subscription:
    """Authorize, then register callback. Call unsubscribe() on the handle when done."""
    channel = authorize_channel(db, viewer_id, topic, target_id)
    return hub.subscribe(channel, callback, after_seq=after_seq)


def subscribe_to_messages(db, hub, viewer_id, conversation_id, callback, after_seq=None):
    return subscribe(db, hub, viewer_id, Topic.messages, conversation_id, callback, after_seq)


def subscribe_to_conversations(db, hub, viewer_id, user_id, callback, after_seq=None):
    return subscribe(db, hub, viewer_id, Topic.conversations, user_id, callback, after_seq)


def subscribe_to_meetings(db, hub, viewer_id, user_id, callback, after_seq=None):
    return subscribe(db, hub, viewer_id, Topic.meetings, user_id, callback, after_seq)


def subscribe_to_study_room_messages(db, hub, viewer_id, room_id, callback, after_seq=None):
    return subscribe(
        db, hub, viewer_id, Topic.study_room_messages, room_id, callback, after_seq
    )


def subscribe_to_study_room_participants(db, hub, viewer_id, room_id, callback, after_seq=None):
    return subscribe(
        db, hub, viewer_id, Topic.study_room_participants, room_id, callback, after_seq
    )


def subscribe_to_responses(db, hub, viewer_id, ticket_id, callback, after_seq=None):
    return subscribe(db, hub, viewer_id, Topic.responses, ticket_id, callback, after_seq)
