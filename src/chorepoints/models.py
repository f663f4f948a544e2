"""Result value objects returned by the ChorePoints ledger operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .persistence import ChildTask, RewardClaim, RuleViolation


class LedgerEvent(str, Enum):
    """Event names written to the structured ledger log."""

    BALANCE_CHANGED = "balance_changed"
    TASK_TOGGLED = "task_toggled"
    RULE_VIOLATED = "rule_violated"
    REWARD_REDEEMED = "reward_redeemed"
    REDEMPTION_REFUSED = "redemption_refused"
    LEDGER_ANOMALY = "ledger_anomaly"
    INVARIANT_VIOLATION = "invariant_violation"
    TRANSIENT_RETRY = "transient_retry"


@dataclass(slots=True, frozen=True)
class BalanceChange:
    """Outcome of a single clamped balance mutation."""

    child_id: int
    previous_balance: int
    requested_delta: int
    new_balance: int

    @property
    def applied_delta(self) -> int:
        return self.new_balance - self.previous_balance

    @property
    def clamped(self) -> bool:
        """True when the zero floor absorbed part of the requested deduction."""

        return self.applied_delta != self.requested_delta


@dataclass(slots=True, frozen=True)
class ToggleResult:
    instance: ChildTask
    new_balance: int

    @property
    def is_completed(self) -> bool:
        return self.instance.is_completed


@dataclass(slots=True, frozen=True)
class ViolationResult:
    """``penalty_applied`` is what left the balance; the record keeps the nominal penalty."""

    record: RuleViolation
    new_balance: int
    penalty_applied: int


@dataclass(slots=True, frozen=True)
class RedemptionResult:
    record: RewardClaim
    new_balance: int


__all__ = [
    "LedgerEvent",
    "BalanceChange",
    "ToggleResult",
    "ViolationResult",
    "RedemptionResult",
]
