from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import asdict, dataclass
from typing import Any

from verifyguard.app.services.service_pulse import GUARD_SWEEP_TOPIC, ServicePulse

from .guard import VerificationGuard
from .policy import expire_block
from .records import Record

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SweepReport:
    """Outcome of a single reclamation pass."""

    scanned: int = 0
    trimmed_records: int = 0
    deleted_records: int = 0
    expired_blocks: int = 0

    @property
    def reclaimed(self) -> int:
        return self.trimmed_records + self.deleted_records + self.expired_blocks

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reclaimed"] = self.reclaimed
        return data


class Sweeper:
    """Periodically trims stale attempts and drops idle records.

    :meth:`sweep` performs one pass and can be called directly. :meth:`start`
    runs it every ``interval`` seconds on an asyncio task until :meth:`stop`
    cancels it. The sweeper never runs on the request path.
    """

    def __init__(
        self,
        guard: VerificationGuard,
        *,
        interval: float | None = None,
        pulse: ServicePulse | None = None,
    ) -> None:
        self._guard = guard
        self._interval = float(interval or guard.config.cleanup_interval_seconds)
        self._pulse = pulse
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._last_report: SweepReport | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_report(self) -> SweepReport | None:
        return self._last_report

    def sweep(self, now: float | None = None) -> SweepReport:
        """Run one reclamation pass over every record."""

        guard = self._guard
        now = guard.now() if now is None else now
        cutoff = now - guard.config.retention_seconds
        store = guard.store
        counts = {"scanned": 0, "trimmed": 0, "deleted": 0, "expired": 0}

        def _reclaim(key: str, record: Record) -> None:
            counts["scanned"] += 1
            if expire_block(record, now):
                counts["expired"] += 1
            if record.trim_before(cutoff):
                counts["trimmed"] += 1
            if store.discard_if_idle(record):
                counts["deleted"] += 1

        store.for_each(_reclaim)
        report = SweepReport(
            scanned=counts["scanned"],
            trimmed_records=counts["trimmed"],
            deleted_records=counts["deleted"],
            expired_blocks=counts["expired"],
        )
        self._last_report = report

        if report.reclaimed:
            logger.info(
                "Attempt cache sweep: %s deleted, %s trimmed, %s blocks expired (%s scanned)",
                report.deleted_records,
                report.trimmed_records,
                report.expired_blocks,
                report.scanned,
            )
        else:
            logger.debug("Attempt cache sweep found nothing to reclaim (%s scanned)", report.scanned)
        if self._pulse is not None:
            self._pulse.emit(GUARD_SWEEP_TOPIC, report.as_dict())
        return report

    async def start(self) -> None:
        """Start the periodic sweep task; a no-op if it is already running."""

        async with self._lock:
            if self.running:
                return
            self._task = asyncio.create_task(
                self._sweep_loop(),
                name="verifyguard-sweeper",
            )
            logger.debug("Attempt cache sweeper started (interval %ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""

        async with self._lock:
            task = self._task
            self._task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("Attempt cache sweeper stopped")

    async def __aenter__(self) -> "Sweeper":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _sweep_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Attempt cache sweep failed")
        except asyncio.CancelledError:
            logger.debug("Sweep loop cancelled")
            raise


__all__ = ["SweepReport", "Sweeper"]
