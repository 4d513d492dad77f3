from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class DenyReason(str, Enum):
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"


@dataclass(slots=True, frozen=True)
class Allow:
    """The attempt may proceed to verification."""

    remaining: int

    @property
    def allowed(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class Deny:
    """The attempt must be rejected without verifying.

    ``block_until`` and ``recent_failed_count`` are set for
    :attr:`DenyReason.BLOCKED`; ``recent_count`` for
    :attr:`DenyReason.RATE_LIMITED`.
    """

    reason: DenyReason
    block_until: float | None = None
    recent_failed_count: int | None = None
    recent_count: int | None = None

    @property
    def allowed(self) -> bool:
        return False

    def retry_after(self, now: float) -> int | None:
        """Whole seconds until a block lifts, or ``None`` when not blocked."""

        if self.reason is not DenyReason.BLOCKED or self.block_until is None:
            return None
        return max(1, int(self.block_until - now + 0.999))


Decision = Union[Allow, Deny]

__all__ = ["Allow", "Decision", "Deny", "DenyReason"]
