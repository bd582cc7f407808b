"""Per-subscription ordering of change events.

Events may arrive duplicated or out of order (Redis relay, reconnects).
SequenceReconciler turns that into an in-order, exactly-once stream:

- seq <= last delivered: dropped (duplicate or stale)
- seq == last delivered + 1: delivered, then any buffered successors
- seq further ahead: buffered until the gap fills

A gap is abandoned, and the buffer flushed in seq order, when more than
max_pending events are buffered or when it has stayed open for
gap_timeout_s. Pub/sub is at-most-once, so a missing seq may never come.
Events without a seq are delivered immediately.
"""

import threading
import time
from collections.abc import Callable

from tutorlink.logging import get_logger
from tutorlink.realtime.events import ChangeEvent

logger = get_logger(__name__)


class SequenceReconciler:
    def __init__(
        self,
        deliver: Callable[[ChangeEvent], None],
        after_seq: int | None = None,
        max_pending: int = 100,
        gap_timeout_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._deliver = deliver
        self._last_seq = after_seq
        self._max_pending = max_pending
        self._gap_timeout_s = gap_timeout_s
        self._clock = clock
        self._pending: dict[int, ChangeEvent] = {}
        self._gap_opened_at: float | None = None
        self._lock = threading.RLock()

    @property
    def last_seq(self) -> int | None:
        return self._last_seq

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def accept(self, event: ChangeEvent) -> list[ChangeEvent]:
        """Feed one event; returns the events delivered as a result."""
        # delivery order equals seq order across threads
        with self._lock:
            ready = self._collect(event)
            ready.extend(self._expire_gap())
            for item in ready:
                self._deliver(item)
        return ready

    def flush_expired(self) -> list[ChangeEvent]:
        """Deliver the buffer if the open gap has outlived gap_timeout_s."""
        with self._lock:
            ready = self._expire_gap()
            for item in ready:
                self._deliver(item)
        return ready

    def _collect(self, event: ChangeEvent) -> list[ChangeEvent]:
        seq = event.seq
        if seq is None:
            return [event]

        if self._last_seq is None:
            self._last_seq = seq
            return [event, *self._drain()]

        if seq <= self._last_seq or seq in self._pending:
            logger.debug("realtime_event_dropped", channel=event.channel, seq=seq)
            return []

        if seq == self._last_seq + 1:
            self._last_seq = seq
            return [event, *self._drain()]

        self._pending[seq] = event
        if self._gap_opened_at is None:
            self._gap_opened_at = self._clock()
        if len(self._pending) <= self._max_pending:
            return []
        return self._flush_pending("realtime_gap_overflow", event.channel)

    def _expire_gap(self) -> list[ChangeEvent]:
        if not self._pending or self._gap_timeout_s is None or self._gap_opened_at is None:
            return []
        if self._clock() - self._gap_opened_at < self._gap_timeout_s:
            return []
        channel = next(iter(self._pending.values())).channel
        return self._flush_pending("realtime_gap_timed_out", channel)

    def _flush_pending(self, reason: str, channel: str) -> list[ChangeEvent]:
        logger.warning(
            reason,
            channel=channel,
            expected_seq=self._last_seq + 1,
            pending=len(self._pending),
        )
        flushed = [self._pending.pop(s) for s in sorted(self._pending)]
        self._last_seq = flushed[-1].seq
        self._gap_opened_at = None
        return flushed

    def _drain(self) -> list[ChangeEvent]:
        ready = []
        while self._last_seq + 1 in self._pending:
            self._last_seq += 1
            ready.append(self._pending.pop(self._last_seq))
        # anything at or below last_seq is now stale
        for stale in [s for s in self._pending if s <= self._last_seq]:
            del self._pending[stale]
        if not self._pending:
            self._gap_opened_at = None
        elif ready:
            # a later gap starts now
            self._gap_opened_at = self._clock()
        return ready
