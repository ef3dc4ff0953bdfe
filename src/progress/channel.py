"""In-process publish/subscribe channel for per-queue progress messages.

Each ``queue_id`` has its own set of subscriptions. A subscription owns a
bounded buffer: when a slow consumer lets it fill up, the oldest message is
dropped and counted. New subscribers first receive a replay of the stored
snapshot, then live messages with a sequence greater than the replay.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from functools import lru_cache
from threading import Condition, Lock
import time
from typing import Any, Deque, Dict, Iterator, List, Optional, Sequence, Set

from src.core.config import get_settings
from src.core.metrics import record_progress_events_dropped


MESSAGE_KIND_PROGRESS = "progress"
MESSAGE_KIND_STATUS = "status"


@dataclass(frozen=True)
class ChannelMessage:
    kind: str
    queue_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0


class Subscription:
    def __init__(self, hub: "ProgressHub", queue_id: str, *, buffer_size: int, replay: Sequence[ChannelMessage]) -> None:
        self._hub = hub
        self.queue_id = queue_id
        self.buffer_size = buffer_size
        self._buffer: Deque[ChannelMessage] = deque()
        self._condition = Condition()
        self._closed = False
        self.dropped = 0
        self.replay: List[ChannelMessage] = list(replay)
        self._replayed_sequence = max((message.sequence for message in self.replay), default=0)

    @property
    def closed(self) -> bool:
        return self._closed

    def set_replay(self, replay: Sequence[ChannelMessage]) -> None:
        """Install the snapshot and drop buffered progress it already covers."""

        with self._condition:
            self.replay = list(replay)
            self._replayed_sequence = max((message.sequence for message in self.replay), default=0)
            self._buffer = deque(
                message
                for message in self._buffer
                if not (message.kind == MESSAGE_KIND_PROGRESS and 0 < message.sequence <= self._replayed_sequence)
            )

    def push(self, message: ChannelMessage) -> None:
        dropped_now = 0
        with self._condition:
            if self._closed:
                return
            if message.kind == MESSAGE_KIND_PROGRESS and 0 < message.sequence <= self._replayed_sequence:
                return
            while len(self._buffer) >= self.buffer_size:
                self._buffer.popleft()
                dropped_now += 1
            self._buffer.append(message)
            self.dropped += dropped_now
            self._condition.notify_all()
        if dropped_now:
            record_progress_events_dropped(queue_id=self.queue_id, count=dropped_now)

    def get(self, timeout: Optional[float] = None) -> Optional[ChannelMessage]:
        """Pop the next live message, waiting up to ``timeout`` seconds."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while not self._buffer and not self._closed:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._condition.wait(remaining)
            if self._buffer:
                return self._buffer.popleft()
            return None

    def drain(self) -> List[ChannelMessage]:
        with self._condition:
            messages = list(self._buffer)
            self._buffer.clear()
        return messages

    def messages(self, *, timeout: float) -> Iterator[ChannelMessage]:
        """Replay first, then live messages until closed or idle for ``timeout``."""

        yield from self.replay
        while True:
            message = self.get(timeout=timeout)
            if message is None:
                return
            yield message

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()
        self._hub.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressHub:
    def __init__(self, *, buffer_size: int) -> None:
        self.buffer_size = buffer_size
        self._lock = Lock()
        self._subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, queue_id: str, *, replay: Sequence[ChannelMessage] = ()) -> Subscription:
        subscription = Subscription(self, queue_id, buffer_size=self.buffer_size, replay=replay)
        with self._lock:
            self._subscriptions[queue_id].add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.queue_id)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscriptions[subscription.queue_id]

    def publish(self, message: ChannelMessage) -> int:
        with self._lock:
            subscribers = list(self._subscriptions.get(message.queue_id, ()))
        for subscription in subscribers:
            subscription.push(message)
        return len(subscribers)

    def subscriber_count(self, queue_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(queue_id, ()))


@lru_cache(maxsize=1)
def get_progress_hub() -> ProgressHub:
    return ProgressHub(buffer_size=get_settings().progress_subscriber_buffer_size)


def publish_status_change(*, queue_id: str, from_status: str, to_status: str, progress_percentage: int) -> None:
    get_progress_hub().publish(
        ChannelMessage(
            kind=MESSAGE_KIND_STATUS,
            queue_id=queue_id,
            payload={
                "from_status": from_status,
                "status": to_status,
                "progress_percentage": progress_percentage,
            },
        )
    )
