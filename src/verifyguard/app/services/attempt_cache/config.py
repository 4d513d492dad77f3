from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from verifyguard.app.util.number import parse_positive_float, parse_positive_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS_PER_WINDOW = 10
DEFAULT_WINDOW_SECONDS = 5 * 60.0
DEFAULT_MAX_FAILED_ATTEMPTS = 5
DEFAULT_BLOCK_SECONDS = 15 * 60.0
DEFAULT_CLEANUP_INTERVAL_SECONDS = 30 * 60.0

# Raw attempts are retained for this many decision windows so that a full
# window can always be counted, even right at its boundary.
RETENTION_MULTIPLIER = 2.0
MIN_RETENTION_MULTIPLIER = 1.0

_INT_FIELDS: dict[str, int] = {
    "max_attempts_per_window": DEFAULT_MAX_ATTEMPTS_PER_WINDOW,
    "max_failed_attempts": DEFAULT_MAX_FAILED_ATTEMPTS,
}

_FLOAT_FIELDS: dict[str, float] = {
    "window_seconds": DEFAULT_WINDOW_SECONDS,
    "block_seconds": DEFAULT_BLOCK_SECONDS,
    "cleanup_interval_seconds": DEFAULT_CLEANUP_INTERVAL_SECONDS,
    "retention_multiplier": RETENTION_MULTIPLIER,
}

_FLOAT_MINIMUMS: dict[str, float] = {
    "retention_multiplier": MIN_RETENTION_MULTIPLIER,
}


@dataclass(slots=True, frozen=True)
class GuardConfig:
    """Immutable thresholds for the verification attempt cache.

    Every field must be positive and ``retention_multiplier`` at least 1 so
    retention always covers a full window. Invalid values are replaced with their
    documented defaults and a warning is logged instead of raising, so a
    bad environment variable never prevents the service from starting.

    ``manual_block_seconds`` is the default duration for administrative
    blocks. It falls back to ``block_seconds`` but is tuned independently.
    """

    max_attempts_per_window: int = DEFAULT_MAX_ATTEMPTS_PER_WINDOW
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS
    block_seconds: float = DEFAULT_BLOCK_SECONDS
    cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS
    manual_block_seconds: float | None = None
    retention_multiplier: float = RETENTION_MULTIPLIER

    def __post_init__(self) -> None:
        for name, default in _INT_FIELDS.items():
            raw = getattr(self, name)
            value = parse_positive_int(raw)
            if value is None:
                _warn_invalid(name, raw, default)
                value = default
            object.__setattr__(self, name, value)

        for name, default in _FLOAT_FIELDS.items():
            raw = getattr(self, name)
            value = parse_positive_float(raw)
            if value is not None and value < _FLOAT_MINIMUMS.get(name, 0.0):
                value = None
            if value is None:
                _warn_invalid(name, raw, default)
                value = default
            object.__setattr__(self, name, value)

        raw_manual = self.manual_block_seconds
        manual = parse_positive_float(raw_manual)
        if manual is None:
            if raw_manual is not None:
                _warn_invalid("manual_block_seconds", raw_manual, self.block_seconds)
            manual = self.block_seconds
        object.__setattr__(self, "manual_block_seconds", manual)

    @property
    def retention_seconds(self) -> float:
        """Age beyond which raw attempts are discarded."""

        return self.window_seconds * self.retention_multiplier

    @classmethod
    def from_minutes(
        cls,
        *,
        max_attempts_per_window: object = DEFAULT_MAX_ATTEMPTS_PER_WINDOW,
        window_minutes: object = DEFAULT_WINDOW_SECONDS / 60,
        max_failed_attempts: object = DEFAULT_MAX_FAILED_ATTEMPTS,
        block_minutes: object = DEFAULT_BLOCK_SECONDS / 60,
        cleanup_interval_minutes: object = DEFAULT_CLEANUP_INTERVAL_SECONDS / 60,
        manual_block_minutes: object = None,
        retention_multiplier: object = RETENTION_MULTIPLIER,
    ) -> "GuardConfig":
        """Build a config from minute-based values as they appear in settings."""

        return cls(
            max_attempts_per_window=max_attempts_per_window,  # type: ignore[arg-type]
            window_seconds=_minutes_to_seconds(window_minutes),  # type: ignore[arg-type]
            max_failed_attempts=max_failed_attempts,  # type: ignore[arg-type]
            block_seconds=_minutes_to_seconds(block_minutes),  # type: ignore[arg-type]
            cleanup_interval_seconds=_minutes_to_seconds(cleanup_interval_minutes),  # type: ignore[arg-type]
            manual_block_seconds=_minutes_to_seconds(manual_block_minutes),  # type: ignore[arg-type]
            retention_multiplier=retention_multiplier,  # type: ignore[arg-type]
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "GuardConfig":
        """Construct a :class:`GuardConfig` from the ``GUARD`` settings section."""

        section = settings.get("GUARD") if hasattr(settings, "get") else None
        guard: Mapping[str, Any] = _coerce_mapping(section)
        return cls.from_minutes(
            max_attempts_per_window=guard.get(
                "max_attempts_per_window", DEFAULT_MAX_ATTEMPTS_PER_WINDOW
            ),
            window_minutes=guard.get("window_minutes", DEFAULT_WINDOW_SECONDS / 60),
            max_failed_attempts=guard.get(
                "max_failed_attempts", DEFAULT_MAX_FAILED_ATTEMPTS
            ),
            block_minutes=guard.get("block_minutes", DEFAULT_BLOCK_SECONDS / 60),
            cleanup_interval_minutes=guard.get(
                "cleanup_interval_minutes", DEFAULT_CLEANUP_INTERVAL_SECONDS / 60
            ),
            manual_block_minutes=guard.get("manual_block_minutes"),
            retention_multiplier=guard.get("retention_multiplier", RETENTION_MULTIPLIER),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain dictionary."""

        return asdict(self)


def _warn_invalid(name: str, raw: object, default: object) -> None:
    logger.warning(
        "Invalid attempt cache setting %s=%r; using default %s", name, raw, default
    )


def _minutes_to_seconds(value: object) -> object:
    # Unparsable input is passed through untouched so validation can report it.
    if value is None or isinstance(value, bool):
        return value
    try:
        return float(str(value).strip()) * 60.0
    except (TypeError, ValueError):
        return value


def _coerce_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, Mapping):
        return {str(k).lower(): v for k, v in value.items()}
    return {}


__all__ = [
    "DEFAULT_BLOCK_SECONDS",
    "DEFAULT_CLEANUP_INTERVAL_SECONDS",
    "DEFAULT_MAX_ATTEMPTS_PER_WINDOW",
    "DEFAULT_MAX_FAILED_ATTEMPTS",
    "DEFAULT_WINDOW_SECONDS",
    "GuardConfig",
    "MIN_RETENTION_MULTIPLIER",
    "RETENTION_MULTIPLIER",
]
