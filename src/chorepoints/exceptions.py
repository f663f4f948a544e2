"""Custom exception hierarchy for the ChorePoints package."""

from __future__ import annotations


class ChorePointsError(Exception):
    """Base class for all ChorePoints specific errors."""


class NotFoundError(ChorePointsError):
    """Raised when a child, template or task instance is missing or out of scope."""


class InsufficientPointsError(ChorePointsError):
    """Raised when a redemption costs more than the child's current balance."""

    def __init__(self, message: str, *, balance: int, cost: int) -> None:
        super().__init__(message)
        self.balance = balance
        self.cost = cost


class TransientStoreError(ChorePointsError):
    """Raised when the store times out or is contended; safe to retry."""


class InvariantViolationError(ChorePointsError):
    """Raised when stored ledger state breaks an invariant (indicates a bug)."""
