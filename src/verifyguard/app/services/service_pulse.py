"""In-process broadcast of guard state changes.

The guard and sweeper emit here after releasing the store lock; the event
log and the admin endpoints read from here.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from blinker import Namespace

logger = logging.getLogger(__name__)

GUARD_BLOCK_TOPIC = "guard.block"
GUARD_UNBLOCK_TOPIC = "guard.unblock"
GUARD_CLEAR_TOPIC = "guard.clear"
GUARD_SWEEP_TOPIC = "guard.sweep"

# Topics that change the state of a single identity key.
GUARD_KEY_TOPICS = (GUARD_BLOCK_TOPIC, GUARD_UNBLOCK_TOPIC, GUARD_CLEAR_TOPIC)


@dataclass(slots=True, frozen=True)
class PulseEvent:
    topic: str
    payload: Mapping[str, Any]
    timestamp: float


class ServicePulse:
    """Topic-keyed blinker signals plus the last event seen per topic.

    A listener that raises is logged and skipped; emitting never fails the
    caller.
    """

    def __init__(self) -> None:
        self._namespace = Namespace()
        self._latest: dict[str, PulseEvent] = {}
        self._lock = threading.Lock()

    def emit(self, topic: str, payload: Mapping[str, Any]) -> PulseEvent:
        event = PulseEvent(
            topic=topic,
            payload=MappingProxyType(dict(payload)),
            timestamp=time.time(),
        )
        with self._lock:
            self._latest[topic] = event
        signal = self._namespace.signal(topic)
        for receiver in list(signal.receivers_for(self)):
            try:
                receiver(self, event=event)
            except Exception:
                logger.exception("Guard event listener failed for topic %s", topic)
        return event

    def subscribe(
        self,
        listener: Callable[[PulseEvent], None],
        *,
        topics: Iterable[str],
    ) -> Callable[[], None]:
        """Call ``listener`` for every event on ``topics``.

        Returns a callable that removes the subscription.
        """

        def _receiver(sender: Any, *, event: PulseEvent, **_: Any) -> None:
            listener(event)

        signals = [self._namespace.signal(topic) for topic in dict.fromkeys(topics)]
        for signal in signals:
            signal.connect(_receiver, sender=self, weak=False)

        def unsubscribe() -> None:
            for signal in signals:
                signal.disconnect(_receiver, sender=self)

        return unsubscribe

    def latest(self, topic: str) -> PulseEvent | None:
        with self._lock:
            return self._latest.get(topic)


__all__ = [
    "GUARD_BLOCK_TOPIC",
    "GUARD_CLEAR_TOPIC",
    "GUARD_KEY_TOPICS",
    "GUARD_SWEEP_TOPIC",
    "GUARD_UNBLOCK_TOPIC",
    "PulseEvent",
    "ServicePulse",
]
