"""In-process event log for a follow run.

Events are emitted by the state machine (on the polling thread) and by
``Follower.stop`` (possibly from a signal handler or another thread), so the
history is guarded by a lock. Subscriptions match an exact topic, a dotted
prefix ending in ``.*`` or ``*`` for everything.
"""

from __future__ import annotations

import threading
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from follow.models import utc_now

DEFAULT_EVENT_HISTORY = 1000

EventCallback = Callable[["InternalEvent"], None]


@dataclass(slots=True)
class InternalEvent:
    topic: str
    ts: datetime
    payload: dict[str, Any] = field(default_factory=dict)


def _matches(pattern: str, topic: str) -> bool:
    if pattern in ("*", topic):
        return True
    return pattern.endswith(".*") and topic.startswith(pattern[:-1])


class EventBus:
    def __init__(self, history: int = DEFAULT_EVENT_HISTORY) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[tuple[str, EventCallback]] = []
        self._history: deque[InternalEvent] = deque(maxlen=history)
        self._counts: Counter[str] = Counter()

    def subscribe(self, pattern: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback``; the returned function removes it again."""
        entry = (pattern, callback)
        with self._lock:
            self._subscriptions.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscriptions:
                    self._subscriptions.remove(entry)

        return _unsubscribe

    def emit(self, topic: str, **payload: Any) -> InternalEvent:
        event = InternalEvent(topic=topic, ts=utc_now(), payload=payload)
        with self._lock:
            self._history.append(event)
            self._counts[topic] += 1
            callbacks = [callback for pattern, callback in self._subscriptions if _matches(pattern, topic)]
        # Not under the lock: callbacks may emit.
        for callback in callbacks:
            callback(event)
        return event

    def recent(self, limit: int = 100) -> list[InternalEvent]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._history)[-limit:]

    def count(self, topic: str) -> int:
        """Number of ``topic`` events emitted so far, including ones evicted from history."""
        with self._lock:
            return self._counts[topic]
