"""Task completion tracking for scheduled child tasks."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional

from .balance import BalanceMutator
from .exceptions import InvariantViolationError
from .models import LedgerEvent, ToggleResult
from .ops import StructuredLogger
from .persistence import LedgerStore, Task, now_local
from .queries import find_task_instance, load_child, load_template


class TaskCompletionTracker:
    """Flip task instances between pending and completed.

    Completing an instance awards the task's current ``points_reward``.
    Un-completing it leaves the balance alone: earned points are not clawed
    back, and completing the same instance again awards it again.
    """

    def __init__(
        self,
        store: LedgerStore,
        mutator: BalanceMutator,
        *,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._store = store
        self._mutator = mutator
        self._logger = logger or StructuredLogger()
        self._clock = clock

    def toggle_completion(
        self,
        child_id: int,
        task_id: int,
        due_date: date,
        *,
        parent_id: Optional[str] = None,
    ) -> ToggleResult:
        change = None
        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, parent_id=parent_id, for_update=True)
            task = load_template(session, Task, task_id, owner=child)
            try:
                instance = find_task_instance(session, child_id, task_id, due_date)
            except InvariantViolationError as exc:
                self._logger.log(
                    LedgerEvent.INVARIANT_VIOLATION.value,
                    level="error",
                    child_id=child_id,
                    task_id=task_id,
                    due_date=due_date.isoformat(),
                    detail=str(exc),
                )
                raise
            if instance.is_completed:
                instance.is_completed = False
                instance.completed_at = None
                new_balance = child.points
            else:
                reward = task.points_reward
                instance.is_completed = True
                instance.completed_at = self._clock()
                instance.points_awarded += reward
                change = self._mutator.apply_to(session, child, reward)
                new_balance = change.new_balance
            session.add(instance)

        if change is not None:
            self._mutator.log_change(change, reason=f"task:{task_id}")
        self._logger.log(
            LedgerEvent.TASK_TOGGLED.value,
            child_id=child_id,
            task_id=task_id,
            due_date=due_date.isoformat(),
            completed=instance.is_completed,
            balance=new_balance,
        )
        return ToggleResult(instance=instance, new_balance=new_balance)


__all__ = ["TaskCompletionTracker"]
