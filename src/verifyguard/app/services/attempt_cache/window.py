"""Trailing-window attempt counts used by admission and the block policy."""

from __future__ import annotations

from dataclasses import dataclass

from .records import Record


@dataclass(slots=True, frozen=True)
class WindowCounts:
    """Attempt counts inside the trailing decision window."""

    recent: int = 0
    recent_failed: int = 0
    recent_succeeded: int = 0


def evaluate_window(record: Record, now: float, window_seconds: float) -> WindowCounts:
    """Count the attempts of ``record`` with ``occurred_at >= now - window_seconds``.

    Every windowed count in the cache comes from here.
    """

    recent = record.attempts_since(now - window_seconds)
    failed = sum(1 for attempt in recent if not attempt.succeeded)
    return WindowCounts(
        recent=len(recent),
        recent_failed=failed,
        recent_succeeded=len(recent) - failed,
    )


__all__ = ["WindowCounts", "evaluate_window"]
