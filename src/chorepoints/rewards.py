"""Reward redemption behind an affordability gate."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from .balance import BalanceMutator
from .exceptions import InsufficientPointsError
from .models import LedgerEvent, RedemptionResult
from .ops import StructuredLogger
from .persistence import LedgerStore, Reward, RewardClaim, now_local
from .points import format_points
from .queries import load_child, load_template


class RewardRedemptionProcessor:
    """Redeem rewards only when the balance covers the full cost.

    The affordability check and the deduction run against the same locked
    balance, so concurrent redemptions cannot both pass on a stale read.
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

    def redeem(self, child_id: int, reward_id: int, *, parent_id: Optional[str] = None) -> RedemptionResult:
        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, parent_id=parent_id, for_update=True)
            reward = load_template(session, Reward, reward_id, owner=child)
            cost = reward.cost
            if child.points < cost:
                self._logger.log(
                    LedgerEvent.REDEMPTION_REFUSED.value,
                    child_id=child_id,
                    reward_id=reward_id,
                    balance=child.points,
                    cost=cost,
                )
                raise InsufficientPointsError(
                    f"Child {child_id} has {format_points(child.points)}; '{reward.label}' costs {format_points(cost)}.",
                    balance=child.points,
                    cost=cost,
                )
            record = RewardClaim(
                child_id=child_id,
                reward_id=reward.id,
                reward_label=reward.label,
                cost=cost,
                claimed_at=self._clock(),
            )
            session.add(record)
            change = self._mutator.apply_to(session, child, -cost)
            session.flush()

        self._mutator.log_change(change, reason=f"reward:{reward_id}")
        if change.clamped:
            self._logger.log(
                LedgerEvent.LEDGER_ANOMALY.value,
                level="warning",
                child_id=child_id,
                reward_id=reward_id,
                detail="zero floor triggered on a gated redemption",
                previous=change.previous_balance,
                cost=cost,
            )
        self._logger.log(
            LedgerEvent.REWARD_REDEEMED.value,
            child_id=child_id,
            reward_id=reward_id,
            redemption_id=record.id,
            cost=cost,
            balance=change.new_balance,
        )
        return RedemptionResult(record=record, new_balance=change.new_balance)


__all__ = ["RewardRedemptionProcessor"]
