from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class RecordStats:
    """Point-in-time view of one identity key."""

    total_attempts: int = 0
    recent_attempts: int = 0
    failed_attempts: int = 0
    succeeded_attempts: int = 0
    is_blocked: bool = False
    block_until: float | None = None
    last_attempt_at: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


EMPTY_RECORD_STATS = RecordStats()


@dataclass(slots=True, frozen=True)
class CacheStats:
    """Aggregate figures over the whole record store."""

    total_records: int = 0
    blocked_count: int = 0
    total_attempts: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = ["CacheStats", "EMPTY_RECORD_STATS", "RecordStats"]
