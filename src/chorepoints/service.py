"""High level service exposing the ChorePoints ledger operations."""

from __future__ import annotations

import time
from datetime import date, datetime
from typing import Callable, Optional, TypeVar

from .balance import BalanceMutator
from .catalog import Catalog
from .config import EVENT_LOG_PATH, RETRY_ATTEMPTS, RETRY_BACKOFF_SECONDS
from .exceptions import TransientStoreError
from .models import LedgerEvent, RedemptionResult, ToggleResult, ViolationResult
from .ops import StructuredLogger
from .persistence import LedgerStore, now_local
from .queries import load_child
from .rewards import RewardRedemptionProcessor
from .rules import RuleViolationRecorder
from .tasks import TaskCompletionTracker

T = TypeVar("T")


class ChoreLedger:
    """Entry point for balance reads and the three balance-changing events.

    Each mutation runs as one per-child transaction. Transient store failures
    are retried up to ``retry_attempts`` times; every retry re-reads the
    instance and balance from scratch, so a failed attempt never leaves a
    partial write behind.
    """

    __slots__ = (
        "_store",
        "_logger",
        "_mutator",
        "_tracker",
        "_violations",
        "_redemptions",
        "_catalog",
        "_retry_attempts",
        "_retry_backoff",
        "_clock",
    )

    def __init__(
        self,
        store: LedgerStore,
        *,
        logger: Optional[StructuredLogger] = None,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self._store = store
        self._logger = logger or StructuredLogger(path=EVENT_LOG_PATH)
        self._mutator = BalanceMutator(store, logger=self._logger)
        self._tracker = TaskCompletionTracker(store, self._mutator, logger=self._logger, clock=clock)
        self._violations = RuleViolationRecorder(store, self._mutator, logger=self._logger, clock=clock)
        self._redemptions = RewardRedemptionProcessor(store, self._mutator, logger=self._logger, clock=clock)
        self._catalog = Catalog(store)
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff
        self._clock = clock

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def mutator(self) -> BalanceMutator:
        return self._mutator

    def today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------
    def get_child_balance(self, child_id: int, *, parent_id: Optional[str] = None) -> int:
        def read() -> int:
            with self._store.session() as session:
                return load_child(session, child_id, parent_id=parent_id).points

        return self._with_retry("get_child_balance", child_id, read)

    def toggle_task_completion(
        self,
        child_id: int,
        task_id: int,
        due_date: Optional[date] = None,
        *,
        parent_id: Optional[str] = None,
    ) -> ToggleResult:
        """Flip a scheduled task; ``due_date`` defaults to today."""

        day = due_date or self.today()
        return self._with_retry(
            "toggle_task_completion",
            child_id,
            lambda: self._tracker.toggle_completion(child_id, task_id, day, parent_id=parent_id),
        )

    def report_rule_violation(self, child_id: int, rule_id: int, *, parent_id: Optional[str] = None) -> ViolationResult:
        return self._with_retry(
            "report_rule_violation",
            child_id,
            lambda: self._violations.record_violation(child_id, rule_id, parent_id=parent_id),
        )

    def redeem_reward(self, child_id: int, reward_id: int, *, parent_id: Optional[str] = None) -> RedemptionResult:
        return self._with_retry(
            "redeem_reward",
            child_id,
            lambda: self._redemptions.redeem(child_id, reward_id, parent_id=parent_id),
        )

    def adjust_balance(self, child_id: int, delta: int, *, reason: str = "adjustment") -> int:
        """Apply a manual parent adjustment through the same clamped mutator."""

        return self._with_retry(
            "adjust_balance",
            child_id,
            lambda: self._mutator.apply_delta(child_id, delta, reason=reason),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _with_retry(self, operation: str, child_id: int, func: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return func()
            except TransientStoreError as exc:
                if attempt >= self._retry_attempts:
                    raise
                self._logger.log(
                    LedgerEvent.TRANSIENT_RETRY.value,
                    level="warning",
                    operation=operation,
                    child_id=child_id,
                    attempt=attempt,
                    error=str(exc),
                )
                if self._retry_backoff > 0:
                    time.sleep(self._retry_backoff * attempt)
                attempt += 1


__all__ = ["ChoreLedger"]
