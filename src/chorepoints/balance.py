"""Balance mutation: the single code path allowed to change a child's points."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Session

from .exceptions import InvariantViolationError
from .models import BalanceChange, LedgerEvent
from .ops import StructuredLogger
from .persistence import Child, LedgerStore, utcnow
from .queries import load_child


class BalanceMutator:
    """Apply clamped point deltas to a child's balance.

    The balance never drops below zero and has no upper bound. Every caller
    goes through :meth:`apply_delta` or, inside an open
    :meth:`LedgerStore.child_transaction`, through :meth:`apply_to`.
    """

    def __init__(self, store: LedgerStore, *, logger: Optional[StructuredLogger] = None) -> None:
        self._store = store
        self._logger = logger or StructuredLogger()

    def apply_delta(self, child_id: int, delta: int, *, reason: str = "adjustment") -> int:
        """Atomically add ``delta`` to the balance of ``child_id`` and return the new balance."""

        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, for_update=True)
            change = self.apply_to(session, child, delta)
        self.log_change(change, reason=reason)
        return change.new_balance

    def apply_to(self, session: Session, child: Child, delta: int) -> BalanceChange:
        """Mutate ``child`` within the caller's per-child transaction.

        The caller commits; nothing is logged here because the unit may still
        roll back.
        """

        if isinstance(delta, bool) or not isinstance(delta, int):
            raise TypeError(f"Point deltas must be integers, got {type(delta).__name__}.")
        current = child.points
        if current < 0:
            self._logger.log(
                LedgerEvent.INVARIANT_VIOLATION.value,
                level="error",
                child_id=child.id,
                balance=current,
            )
            raise InvariantViolationError(f"Child {child.id} has a negative balance of {current} points.")
        new_balance = max(0, current + delta)
        child.points = new_balance
        child.updated_at = utcnow()
        session.add(child)
        return BalanceChange(
            child_id=child.id or 0,
            previous_balance=current,
            requested_delta=delta,
            new_balance=new_balance,
        )

    def log_change(self, change: BalanceChange, *, reason: str) -> None:
        self._logger.log(
            LedgerEvent.BALANCE_CHANGED.value,
            child_id=change.child_id,
            reason=reason,
            previous=change.previous_balance,
            requested=change.requested_delta,
            applied=change.applied_delta,
            balance=change.new_balance,
            clamped=change.clamped,
        )


__all__ = ["BalanceMutator"]
