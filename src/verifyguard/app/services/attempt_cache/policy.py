"""Block/unblock transitions for attempt records.

Apart from the manual overrides on :class:`VerificationGuard`, this module is
the only place a record's ``blocked`` flag changes. Readers go through
:func:`effective_state`, which applies lazy expiry before reporting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .config import GuardConfig
from .records import Record
from .window import WindowCounts, evaluate_window

logger = logging.getLogger(__name__)


class BlockTransition(str, Enum):
    NONE = "none"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"


@dataclass(slots=True, frozen=True)
class EffectiveState:
    """Block state and window counts of a record as seen at ``now``."""

    blocked: bool
    block_until: float | None
    counts: WindowCounts
    expired: bool = False


def block_expired(record: Record, now: float) -> bool:
    """True when ``record`` is flagged blocked but its block has run out."""

    return (
        record.blocked
        and record.block_until is not None
        and now > record.block_until
    )


def expire_block(record: Record, now: float) -> bool:
    """Clear an elapsed block. Returns True if the record was unblocked."""

    if not block_expired(record, now):
        return False
    logger.debug("Block on %s expired at %s", record.key, record.block_until)
    record.unblock()
    return True


def evaluate_block(
    record: Record,
    now: float,
    config: GuardConfig,
) -> BlockTransition:
    """Apply the block policy to ``record`` and return the transition made.

    An expired block is lifted first and nothing else happens on that call.
    Otherwise an unblocked record whose failures inside the window reached
    ``max_failed_attempts`` is blocked for ``block_seconds``. This runs after
    every recorded outcome, so a success still trips the block while enough
    failures remain inside the window.
    """

    if expire_block(record, now):
        return BlockTransition.UNBLOCKED
    if record.blocked:
        return BlockTransition.NONE

    counts = evaluate_window(record, now, config.window_seconds)
    if counts.recent_failed >= config.max_failed_attempts:
        record.block(now + config.block_seconds)
        logger.info(
            "Blocked %s until %s after %s failed attempts",
            record.key,
            record.block_until,
            counts.recent_failed,
        )
        return BlockTransition.BLOCKED
    return BlockTransition.NONE


def effective_state(record: Record, now: float, config: GuardConfig) -> EffectiveState:
    """Lazily expire the block on ``record`` and return its current view."""

    expired = expire_block(record, now)
    counts = evaluate_window(record, now, config.window_seconds)
    return EffectiveState(
        blocked=record.blocked,
        block_until=record.block_until,
        counts=counts,
        expired=expired,
    )


__all__ = [
    "BlockTransition",
    "EffectiveState",
    "block_expired",
    "effective_state",
    "evaluate_block",
    "expire_block",
]
