"""Realtime change notifications.

Services publish ChangeEvents to a RealtimeHub after their transaction
commits. Subscribers receive events in seq order through a per-subscription
SequenceReconciler. With REDIS_URL set, events are relayed through Redis
pub/sub so every API process delivers them.
"""

from tutorlink.realtime.events import ChangeEvent, ChangeType
from tutorlink.realtime.hub import RealtimeHub, Subscription

__all__ = ["ChangeEvent", "ChangeType", "RealtimeHub", "Subscription"]
