from __future__ import annotations

import threading
from collections import deque
from typing import Callable

from verifyguard.app.services.service_pulse import GUARD_KEY_TOPICS, PulseEvent, ServicePulse

DEFAULT_EVENT_LOG_SIZE = 100


class GuardEventLog:
    """Bounded, newest-last record of block, unblock and clear events.

    Subscribes to the pulse on construction; :meth:`close` detaches it.
    """

    def __init__(self, pulse: ServicePulse, *, capacity: int = DEFAULT_EVENT_LOG_SIZE) -> None:
        self._events: deque[PulseEvent] = deque(maxlen=max(1, int(capacity)))
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = pulse.subscribe(
            self._append, topics=GUARD_KEY_TOPICS
        )

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def _append(self, event: PulseEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, limit: int | None = None) -> list[PulseEvent]:
        """Return up to ``limit`` events, newest first."""

        with self._lock:
            events = list(self._events)
        events.reverse()
        if limit is not None:
            events = events[: max(0, limit)]
        return events

    def close(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = ["DEFAULT_EVENT_LOG_SIZE", "GuardEventLog"]
