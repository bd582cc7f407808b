"""In-process subscription hub.

The hub is thread-safe: sync route handlers publish from the threadpool
while SSE streams subscribe from the event loop.
"""

import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

from tutorlink.logging import get_logger
from tutorlink.realtime.events import ChangeEvent, ChangeType
from tutorlink.realtime.reconcile import SequenceReconciler

logger = get_logger(__name__)

Callback = Callable[[ChangeEvent], None]


class Sequencer(Protocol):
    def next_seq(self, channel: str) -> int: ...

    def current_seq(self, channel: str) -> int: ...


class Broadcaster(Protocol):
    def broadcast(self, event: ChangeEvent, origin: str) -> None: ...


class InMemorySequencer:
    """Per-channel counters local to this process."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def next_seq(self, channel: str) -> int:
        with self._lock:
            self._counters[channel] += 1
            return self._counters[channel]

    def current_seq(self, channel: str) -> int:
        with self._lock:
            return self._counters.get(channel, 0)


class Subscription:
    """Handle returned by RealtimeHub.subscribe.

    Usable as a context manager; unsubscribe() is idempotent.
    """

    def __init__(self, hub: "RealtimeHub", channel: str, reconciler: SequenceReconciler):
        self.id = uuid.uuid4()
        self.channel = channel
        self._hub = hub
        self._reconciler = reconciler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def last_seq(self) -> int | None:
        return self._reconciler.last_seq

    def deliver(self, event: ChangeEvent) -> None:
        if self._active:
            self._reconciler.accept(event)

    def flush_expired(self) -> None:
        """Release events held behind a gap that has timed out."""
        if self._active:
            self._reconciler.flush_expired()

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._hub._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


class RealtimeHub:
    """Fan-out of change events to channel subscribers.

    Args:
        sequencer: Assigns per-channel seqs. Defaults to in-process counters.
        broadcaster: Optional cross-process relay (see redis_bridge).
        max_pending: Gap buffer bound for each subscription's reconciler.
        gap_timeout_s: Seconds a subscription waits for a missing seq.
    """

    def __init__(
        self,
        sequencer: Sequencer | None = None,
        broadcaster: Broadcaster | None = None,
        max_pending: int = 100,
        gap_timeout_s: float | None = 5.0,
    ):
        self.origin = uuid.uuid4().hex
        self._sequencer = sequencer or InMemorySequencer()
        self._broadcaster = broadcaster
        self._max_pending = max_pending
        self._gap_timeout_s = gap_timeout_s
        self._subscriptions: dict[str, dict[uuid.UUID, Subscription]] = defaultdict(dict)
        self._lock = threading.Lock()

    def subscribe(
        self, channel: str, callback: Callback, after_seq: int | None = None
    ) -> Subscription:
        """Register callback for channel.

        Args:
            after_seq: Last seq the caller has already seen; older events are dropped.
                Defaults to the channel's current seq, so only later events arrive.
        """

        def guarded(event: ChangeEvent) -> None:
            try:
                callback(event)
            except Exception:
                logger.exception("realtime_callback_failed", channel=channel, seq=event.seq)

        if after_seq is None:
            after_seq = self._sequencer.current_seq(channel)
        reconciler = SequenceReconciler(
            guarded,
            after_seq=after_seq,
            max_pending=self._max_pending,
            gap_timeout_s=self._gap_timeout_s,
        )
        subscription = Subscription(self, channel, reconciler)
        with self._lock:
            self._subscriptions[channel][subscription.id] = subscription
        logger.debug("realtime_subscribed", channel=channel, subscription_id=str(subscription.id))
        return subscription

    def publish(
        self,
        channel: str,
        table: str,
        change_type: ChangeType,
        record: dict[str, Any],
    ) -> ChangeEvent:
        """Assign the next seq for channel and fan the event out."""
        event = ChangeEvent(
            channel=channel,
            table=table,
            type=change_type,
            record=record,
            seq=self._sequencer.next_seq(channel),
        )
        self.dispatch(event)
        if self._broadcaster is not None:
            try:
                self._broadcaster.broadcast(event, self.origin)
            except Exception:
                logger.exception("realtime_broadcast_failed", channel=channel, seq=event.seq)
        return event

    def dispatch(self, event: ChangeEvent) -> None:
        """Deliver an already-sequenced event to local subscribers."""
        with self._lock:
            targets = list(self._subscriptions.get(event.channel, {}).values())
        for subscription in targets:
            subscription.deliver(event)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(channel, {}))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            channel_subs = self._subscriptions.get(subscription.channel)
            if channel_subs is None:
                return
            channel_subs.pop(subscription.id, None)
            if not channel_subs:
                del self._subscriptions[subscription.channel]
        logger.debug(
            "realtime_unsubscribed",
            channel=subscription.channel,
            subscription_id=str(subscription.id),
        )
