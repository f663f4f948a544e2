"""Rule violation recording."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from .balance import BalanceMutator
from .models import LedgerEvent, ViolationResult
from .ops import StructuredLogger
from .persistence import LedgerStore, Rule, RuleViolation, now_local
from .queries import load_child, load_template


class RuleViolationRecorder:
    """Append violation records and deduct the rule's penalty, floored at zero.

    Violations are never de-duplicated. The record stores the nominal penalty
    even when the zero floor absorbs part of it.
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

    def record_violation(self, child_id: int, rule_id: int, *, parent_id: Optional[str] = None) -> ViolationResult:
        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, parent_id=parent_id, for_update=True)
            rule = load_template(session, Rule, rule_id, owner=child)
            record = RuleViolation(
                child_id=child_id,
                rule_id=rule.id,
                rule_label=rule.label,
                points_penalty=rule.points_penalty,
                violated_at=self._clock(),
            )
            session.add(record)
            change = self._mutator.apply_to(session, child, -rule.points_penalty)
            session.flush()

        self._mutator.log_change(change, reason=f"rule:{rule_id}")
        self._logger.log(
            LedgerEvent.RULE_VIOLATED.value,
            child_id=child_id,
            rule_id=rule_id,
            violation_id=record.id,
            penalty=record.points_penalty,
            applied=-change.applied_delta,
            balance=change.new_balance,
        )
        return ViolationResult(record=record, new_balance=change.new_balance, penalty_applied=-change.applied_delta)


__all__ = ["RuleViolationRecorder"]
