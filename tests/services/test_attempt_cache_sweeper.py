from __future__ import annotations

import asyncio
import logging

import pytest

from verifyguard.app.services.attempt_cache import GuardConfig, Sweeper, VerificationGuard
from verifyguard.app.services.service_pulse import GUARD_SWEEP_TOPIC, ServicePulse

T0 = 1_700_000_000.0


def _guard(**overrides: object) -> VerificationGuard:
    config = GuardConfig(window_seconds=300, **overrides)  # type: ignore[arg-type]
    return VerificationGuard(config, clock=lambda: T0)


def test_sweep_on_empty_store_reports_nothing() -> None:
    report = Sweeper(_guard()).sweep(T0)

    assert report.scanned == 0
    assert report.reclaimed == 0


def test_sweep_deletes_records_with_only_stale_attempts() -> None:
    guard = _guard()
    guard.record_outcome("stale", True, now=T0)
    guard.record_outcome("fresh", True, now=T0 + 500)
    sweeper = Sweeper(guard)

    report = sweeper.sweep(T0 + 700)

    assert report.scanned == 2
    assert report.deleted_records == 1
    assert sorted(guard.store.keys()) == ["fresh"]
    assert sweeper.last_report == report


def test_sweep_trims_old_attempts_but_keeps_recent_ones() -> None:
    guard = _guard()
    guard.record_outcome("mixed", False, now=T0)
    guard.record_outcome("mixed", True, now=T0 + 500)

    report = Sweeper(guard).sweep(T0 + 700)

    assert report.trimmed_records == 1
    assert report.deleted_records == 0
    assert guard.get_record_stats("mixed", T0 + 700).total_attempts == 1


def test_sweep_keeps_active_block_without_attempts() -> None:
    guard = _guard()
    guard.block_ip("held", 60, now=T0)

    report = Sweeper(guard).sweep(T0 + 1800)

    assert report.deleted_records == 0
    assert guard.is_blocked("held", T0 + 1800) is True


def test_sweep_expires_block_and_deletes_in_one_pass() -> None:
    guard = _guard(block_seconds=900, max_failed_attempts=2)
    guard.record_outcome("noisy", False, now=T0)
    guard.record_outcome("noisy", False, now=T0 + 1)

    report = Sweeper(guard).sweep(T0 + 1000)

    assert report.expired_blocks == 1
    assert report.deleted_records == 1
    assert "noisy" not in guard.store


def test_sweep_emits_report_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    pulse = ServicePulse()
    guard = _guard()
    guard.record_outcome("stale", True, now=T0)

    with caplog.at_level(logging.INFO):
        Sweeper(guard, pulse=pulse).sweep(T0 + 700)

    latest = pulse.latest(GUARD_SWEEP_TOPIC)
    assert latest is not None
    assert latest.payload["deleted_records"] == 1
    assert latest.payload["reclaimed"] == 1
    assert "1 deleted" in caplog.text


def test_interval_defaults_to_cleanup_interval() -> None:
    guard = _guard(cleanup_interval_seconds=120)

    assert Sweeper(guard).interval == 120
    assert Sweeper(guard, interval=5).interval == 5


def test_background_task_sweeps_until_stopped() -> None:
    pulse = ServicePulse()
    guard = VerificationGuard(GuardConfig(window_seconds=1))
    guard.record_outcome("stale", True, now=T0)
    sweeper = Sweeper(guard, interval=0.01, pulse=pulse)

    async def _run() -> None:
        await sweeper.start()
        first_task = sweeper._task
        await sweeper.start()
        assert sweeper._task is first_task
        assert sweeper.running is True
        for _ in range(100):
            if sweeper.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

    asyncio.run(_run())

    assert sweeper.running is False
    assert sweeper.last_report is not None
    assert "stale" not in guard.store


def test_stop_without_start_is_harmless() -> None:
    sweeper = Sweeper(_guard())

    asyncio.run(sweeper.stop())

    assert sweeper.running is False


def test_context_manager_starts_and_stops() -> None:
    sweeper = Sweeper(_guard(), interval=60)

    async def _run() -> bool:
        async with sweeper:
            return sweeper.running

    assert asyncio.run(_run()) is True
    assert sweeper.running is False
