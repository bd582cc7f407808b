"""Redis relay for multi-process fan-out.

- RedisSequencer: per-channel seqs from INCR realtime:seq:{channel}, shared
  by every process.
- RedisBroadcaster: PUBLISH realtime:{channel} with the JSON event.
- RedisRelay: background thread that PSUBSCRIBEs realtime:* and dispatches
  events from other processes into the local hub.
"""

import json
import threading
from typing import Any

import redis

from tutorlink.logging import get_logger
from tutorlink.realtime.events import ChangeEvent
from tutorlink.realtime.hub import RealtimeHub

logger = get_logger(__name__)

CHANNEL_PREFIX = "realtime:"
SEQ_KEY_PREFIX = "realtime:seq:"
RELAY_PATTERN = "realtime:*"


class RedisSequencer:
    def __init__(self, client: redis.Redis):
        self._client = client

    def next_seq(self, channel: str) -> int:
        return int(self._client.incr(f"{SEQ_KEY_PREFIX}{channel}"))

    def current_seq(self, channel: str) -> int:
        value = self._client.get(f"{SEQ_KEY_PREFIX}{channel}")
        return int(value) if value is not None else 0


class RedisBroadcaster:
    def __init__(self, client: redis.Redis):
        self._client = client

    def broadcast(self, event: ChangeEvent, origin: str) -> None:
        payload = {"origin": origin, "event": event.to_dict()}
        self._client.publish(f"{CHANNEL_PREFIX}{event.channel}", json.dumps(payload, default=str))


def parse_relay_message(message: dict[str, Any]) -> tuple[str, ChangeEvent] | None:
    """Decode a pub/sub message into (origin, event); None for non-event messages."""
    if message.get("type") not in ("message", "pmessage"):
        return None
    data = message.get("data")
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    try:
        payload = json.loads(data)
        return payload["origin"], ChangeEvent.from_dict(payload["event"])
    except (TypeError, ValueError, KeyError):
        logger.warning("realtime_relay_bad_message", channel=str(message.get("channel")))
        return None


class RedisRelay:
    """Forward events published by other processes into the local hub."""

    def __init__(self, client: redis.Redis, hub: RealtimeHub, poll_timeout: float = 1.0):
        self._client = client
        self._hub = hub
        self._poll_timeout = poll_timeout
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._pubsub = None

    def handle_message(self, message: dict[str, Any]) -> bool:
        """Dispatch one pub/sub message. Returns True if it reached the hub."""
        parsed = parse_relay_message(message)
        if parsed is None:
            return False
        origin, event = parsed
        if origin == self._hub.origin:
            return False
        self._hub.dispatch(event)
        return True

    def start(self) -> None:
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.psubscribe(RELAY_PATTERN)
        self._thread = threading.Thread(target=self._run, name="realtime-relay", daemon=True)
        self._thread.start()
        logger.info("realtime_relay_started", pattern=RELAY_PATTERN)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_timeout * 2)
        if self._pubsub is not None:
            self._pubsub.close()
        logger.info("realtime_relay_stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                message = self._pubsub.get_message(timeout=self._poll_timeout)
            except redis.RedisError:
                logger.exception("realtime_relay_read_failed")
                self._stop.wait(self._poll_timeout)
                continue
            if message is not None:
                self.handle_message(message)


def create_redis_hub(
    redis_url: str, max_pending: int = 100, gap_timeout_s: float | None = 5.0
) -> tuple[RealtimeHub, RedisRelay]:
    """Build a hub wired to Redis plus its (not yet started) relay."""
    client = redis.Redis.from_url(redis_url, socket_timeout=5)
    hub = RealtimeHub(
        sequencer=RedisSequencer(client),
        broadcaster=RedisBroadcaster(client),
        max_pending=max_pending,
        gap_timeout_s=gap_timeout_s,
    )
    return hub, RedisRelay(client, hub)
