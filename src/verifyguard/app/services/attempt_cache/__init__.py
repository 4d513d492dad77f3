"""In-memory admission and blocking cache for verification attempts."""
from __future__ import annotations

from .config import GuardConfig, RETENTION_MULTIPLIER
from .decisions import Allow, Decision, Deny, DenyReason
from .guard import VerificationGuard
from .policy import BlockTransition, EffectiveState, effective_state, evaluate_block
from .records import Attempt, Record, RecordStore
from .stats import CacheStats, RecordStats
from .sweeper import SweepReport, Sweeper
from .window import WindowCounts, evaluate_window

__all__ = [
    "Allow",
    "Attempt",
    "BlockTransition",
    "CacheStats",
    "Decision",
    "Deny",
    "DenyReason",
    "EffectiveState",
    "GuardConfig",
    "RETENTION_MULTIPLIER",
    "Record",
    "RecordStats",
    "RecordStore",
    "SweepReport",
    "Sweeper",
    "VerificationGuard",
    "WindowCounts",
    "effective_state",
    "evaluate_block",
    "evaluate_window",
]
