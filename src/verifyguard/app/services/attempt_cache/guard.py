from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from verifyguard.app.services.service_pulse import (
    GUARD_BLOCK_TOPIC,
    GUARD_CLEAR_TOPIC,
    GUARD_UNBLOCK_TOPIC,
    ServicePulse,
)

from .config import GuardConfig
from .decisions import Allow, Decision, Deny, DenyReason
from .policy import BlockTransition, effective_state, evaluate_block
from .records import Attempt, Record, RecordStore
from .stats import EMPTY_RECORD_STATS, CacheStats, RecordStats
from .window import evaluate_window

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class VerificationGuard:
    """Adaptive admission and blocking cache for verification attempts.

    The HTTP layer calls :meth:`admit` before verifying a token and
    :meth:`record_outcome` exactly once afterwards. Administrative callers
    use the manual overrides and the stats methods. Every method is
    synchronous, never performs I/O and is safe to call from any thread.

    ``now`` arguments are Unix timestamps in seconds and default to the
    guard's clock; tests pass them explicitly instead of sleeping.
    """

    __slots__ = ("_config", "_store", "_clock", "_pulse")

    def __init__(
        self,
        config: GuardConfig | None = None,
        *,
        store: RecordStore | None = None,
        clock: Clock = time.time,
        pulse: ServicePulse | None = None,
    ) -> None:
        self._config = config or GuardConfig()
        self._store = store if store is not None else RecordStore()
        self._clock = clock
        self._pulse = pulse

    @property
    def config(self) -> GuardConfig:
        return self._config

    @property
    def store(self) -> RecordStore:
        return self._store

    def now(self) -> float:
        return self._clock()

    def _resolve_now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    # -- admission ---------------------------------------------------------

    def admit(self, key: str, now: float | None = None) -> Decision:
        """Decide whether a new attempt from ``key`` may be verified."""

        now = self._resolve_now(now)
        limit = self._config.max_attempts_per_window
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return Allow(remaining=limit)
            state = effective_state(record, now, self._config)
            if state.expired:
                self._trim(record, now)
        if state.expired:
            self._publish_unblock(key, reason="expired")

        if state.blocked:
            return Deny(
                reason=DenyReason.BLOCKED,
                block_until=state.block_until,
                recent_failed_count=state.counts.recent_failed,
            )
        if state.counts.recent >= limit:
            return Deny(reason=DenyReason.RATE_LIMITED, recent_count=state.counts.recent)
        return Allow(remaining=limit - state.counts.recent)

    # -- recording ---------------------------------------------------------

    def record_outcome(
        self,
        key: str,
        succeeded: bool,
        token_ref: str | None = None,
        tag: str | None = None,
        now: float | None = None,
    ) -> None:
        """Append a verification outcome for ``key`` and re-run the block policy."""

        now = self._resolve_now(now)
        attempt = Attempt(
            occurred_at=now,
            succeeded=bool(succeeded),
            token_ref=token_ref,
            tag=tag,
        )
        with self._store.lock:
            record = self._store.get_or_create(key)
            record.add_attempt(attempt)
            transition = evaluate_block(record, now, self._config)
            block_until = record.block_until
            failed = (
                evaluate_window(record, now, self._config.window_seconds).recent_failed
                if transition is BlockTransition.BLOCKED
                else None
            )
            self._trim(record, now)

        if transition is BlockTransition.BLOCKED:
            self._publish_block(key, block_until, reason="auto", failed_attempts=failed)
        elif transition is BlockTransition.UNBLOCKED:
            self._publish_unblock(key, reason="expired")

    # -- manual overrides --------------------------------------------------

    def block_ip(
        self,
        key: str,
        duration_minutes: float | None = None,
        now: float | None = None,
    ) -> float:
        """Force ``key`` into the blocked state and return the new ``block_until``.

        A missing or non-positive duration uses the configured manual block
        duration. Blocking an already blocked key just resets the deadline.
        """

        now = self._resolve_now(now)
        if duration_minutes is not None and duration_minutes > 0:
            duration = float(duration_minutes) * 60.0
        else:
            duration = float(self._config.manual_block_seconds or self._config.block_seconds)
        block_until = now + duration
        with self._store.lock:
            self._store.get_or_create(key).block(block_until)
        logger.info("Manually blocked %s until %s", key, block_until)
        self._publish_block(key, block_until, reason="manual")
        return block_until

    def unblock_ip(self, key: str, now: float | None = None) -> bool:
        """Lift any block on ``key``. Returns False when the key is unknown."""

        now = self._resolve_now(now)
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return False
            was_blocked = record.blocked
            record.unblock()
            self._trim(record, now)
        if was_blocked:
            logger.info("Manually unblocked %s", key)
            self._publish_unblock(key, reason="manual")
        return True

    def clear_record(self, key: str) -> bool:
        """Forget ``key`` entirely, including any block."""

        removed = self._store.delete(key)
        if removed:
            logger.info("Cleared attempt record for %s", key)
            self._publish(GUARD_CLEAR_TOPIC, {"key": key})
        return removed

    # -- reporting ---------------------------------------------------------

    def is_blocked(self, key: str, now: float | None = None) -> bool:
        now = self._resolve_now(now)
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return False
            return effective_state(record, now, self._config).blocked

    def remaining_attempts(self, key: str, now: float | None = None) -> int:
        """Attempts ``key`` may still make inside the current window."""

        now = self._resolve_now(now)
        limit = self._config.max_attempts_per_window
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return limit
            recent = effective_state(record, now, self._config).counts.recent
        return max(0, limit - recent)

    def failed_attempts_count(self, key: str, now: float | None = None) -> int:
        now = self._resolve_now(now)
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return 0
            return effective_state(record, now, self._config).counts.recent_failed

    def get_record_stats(self, key: str, now: float | None = None) -> RecordStats:
        """Return statistics for ``key``; unknown keys yield the zero shape."""

        now = self._resolve_now(now)
        with self._store.lock:
            record = self._store.get(key)
            if record is None:
                return EMPTY_RECORD_STATS
            state = effective_state(record, now, self._config)
            return RecordStats(
                total_attempts=len(record.attempts),
                recent_attempts=state.counts.recent,
                failed_attempts=state.counts.recent_failed,
                succeeded_attempts=state.counts.recent_succeeded,
                is_blocked=state.blocked,
                block_until=state.block_until,
                last_attempt_at=record.last_attempt_at,
            )

    def get_blocked_ips(self, now: float | None = None) -> list[str]:
        now = self._resolve_now(now)
        blocked: list[str] = []

        def _collect(key: str, record: Record) -> None:
            if effective_state(record, now, self._config).blocked:
                blocked.append(key)

        self._store.for_each(_collect)
        return blocked

    def get_cache_stats(self, now: float | None = None) -> CacheStats:
        now = self._resolve_now(now)
        totals = {"records": 0, "blocked": 0, "attempts": 0}

        def _accumulate(key: str, record: Record) -> None:
            totals["records"] += 1
            totals["attempts"] += len(record.attempts)
            if effective_state(record, now, self._config).blocked:
                totals["blocked"] += 1

        self._store.for_each(_accumulate)
        return CacheStats(
            total_records=totals["records"],
            blocked_count=totals["blocked"],
            total_attempts=totals["attempts"],
        )

    # -- lifecycle ---------------------------------------------------------

    def shutdown(self) -> int:
        """Release every retained record and return how many were dropped."""

        released = self._store.clear()
        logger.debug("Released %s attempt records", released)
        return released

    # -- internals ---------------------------------------------------------

    def _trim(self, record: Record, now: float) -> None:
        record.trim_before(now - self._config.retention_seconds)
        self._store.discard_if_idle(record)

    def _publish_block(
        self,
        key: str,
        block_until: float | None,
        *,
        reason: str,
        failed_attempts: int | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "key": key,
            "block_until": block_until,
            "reason": reason,
        }
        if failed_attempts is not None:
            payload["failed_attempts"] = failed_attempts
        self._publish(GUARD_BLOCK_TOPIC, payload)

    def _publish_unblock(self, key: str, *, reason: str) -> None:
        self._publish(GUARD_UNBLOCK_TOPIC, {"key": key, "reason": reason})

    def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        if self._pulse is None:
            return
        self._pulse.emit(topic, payload)


__all__ = ["Clock", "VerificationGuard"]
