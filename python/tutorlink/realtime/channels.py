"""Channel naming.

One channel per subscription topic and target id:

    messages:{conversation_id}
    conversations:{user_id}
    meetings:{user_id}
    study_room_messages:{room_id}
    study_room_participants:{room_id}
    responses:{ticket_id}
"""

from enum import Enum
from uuid import UUID


class Topic(str, Enum):
    messages = "messages"
    conversations = "conversations"
    meetings = "meetings"
    study_room_messages = "study_room_messages"
    study_room_participants = "study_room_participants"
    responses = "responses"


def channel_name(topic: Topic, target_id: UUID) -> str:
    return f"{topic.value}:{target_id}"


def messages_channel(conversation_id: UUID) -> str:
    return channel_name(Topic.messages, conversation_id)


def conversations_channel(user_id: UUID) -> str:
    return channel_name(Topic.conversations, user_id)


def meetings_channel(user_id: UUID) -> str:
    return channel_name(Topic.meetings, user_id)


def study_room_messages_channel(room_id: UUID) -> str:
    return channel_name(Topic.study_room_messages, room_id)


def study_room_participants_channel(room_id: UUID) -> str:
    return channel_name(Topic.study_room_participants, room_id)


def responses_channel(ticket_id: UUID) -> str:
    return channel_name(Topic.responses, ticket_id)
