"""Per-identity attempt records and the lock-guarded store that owns them."""

from __future__ import annotations

import bisect
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class Attempt:
    """A single verification outcome."""

    occurred_at: float
    succeeded: bool
    token_ref: str | None = None
    tag: str | None = None


def _occurred_at(attempt: Attempt) -> float:
    return attempt.occurred_at


@dataclass(slots=True)
class Record:
    """Mutable attempt history and block state for one identity key.

    Records are only touched while holding :attr:`RecordStore.lock`.
    """

    key: str
    attempts: list[Attempt] = field(default_factory=list)
    blocked: bool = False
    block_until: float | None = None
    last_attempt_at: float | None = None

    @property
    def is_idle(self) -> bool:
        """True when the record holds no attempts and no block."""

        return not self.attempts and not self.blocked

    def add_attempt(self, attempt: Attempt) -> None:
        # Keep ascending order even if a caller-supplied clock steps back.
        if not self.attempts or attempt.occurred_at >= self.attempts[-1].occurred_at:
            self.attempts.append(attempt)
        else:
            bisect.insort(self.attempts, attempt, key=_occurred_at)
        if self.last_attempt_at is None or attempt.occurred_at > self.last_attempt_at:
            self.last_attempt_at = attempt.occurred_at

    def attempts_since(self, start: float) -> list[Attempt]:
        """Return attempts with ``occurred_at >= start``."""

        idx = bisect.bisect_left(self.attempts, start, key=_occurred_at)
        return self.attempts[idx:]

    def trim_before(self, cutoff: float) -> int:
        """Drop attempts older than ``cutoff`` and return how many were removed."""

        idx = bisect.bisect_left(self.attempts, cutoff, key=_occurred_at)
        if idx:
            del self.attempts[:idx]
        return idx

    def block(self, until: float) -> None:
        self.blocked = True
        self.block_until = until

    def unblock(self) -> None:
        self.blocked = False
        self.block_until = None


class RecordStore:
    """Mapping of identity key to :class:`Record` guarded by one re-entrant lock.

    Single-call methods lock internally. Callers that need a read-modify-write
    sequence on a record hold :attr:`lock` for the whole sequence; the lock is
    re-entrant so the store's own methods can be used inside it.
    """

    __slots__ = ("_records", "_lock")

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get(self, key: str) -> Record | None:
        with self._lock:
            return self._records.get(key)

    def get_or_create(self, key: str) -> Record:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = Record(key=key)
                self._records[key] = record
            return record

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def discard_if_idle(self, record: Record) -> bool:
        """Remove ``record`` when it has nothing left worth keeping."""

        with self._lock:
            if not record.is_idle:
                return False
            if self._records.get(record.key) is not record:
                return False
            del self._records[record.key]
            return True

    def for_each(self, fn: Callable[[str, Record], None]) -> None:
        """Call ``fn`` for every record while holding the lock.

        ``fn`` may delete the record it is given.
        """

        with self._lock:
            for key, record in list(self._records.items()):
                fn(key, record)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def clear(self) -> int:
        with self._lock:
            count = len(self._records)
            self._records.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


__all__ = ["Attempt", "Record", "RecordStore"]
