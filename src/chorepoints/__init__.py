"""ChorePoints package: the points ledger behind a household chore and reward chart."""

from .balance import BalanceMutator
from .catalog import Catalog
from .exceptions import (
    ChorePointsError,
    InsufficientPointsError,
    InvariantViolationError,
    NotFoundError,
    TransientStoreError,
)
from .models import BalanceChange, LedgerEvent, RedemptionResult, ToggleResult, ViolationResult
from .ops import StructuredLogger
from .persistence import Child, ChildTask, LedgerStore, Reward, RewardClaim, Rule, RuleViolation, Task
from .rewards import RewardRedemptionProcessor
from .rules import RuleViolationRecorder
from .service import ChoreLedger
from .tasks import TaskCompletionTracker

__all__ = [
    "BalanceChange",
    "BalanceMutator",
    "Catalog",
    "Child",
    "ChildTask",
    "ChoreLedger",
    "ChorePointsError",
    "InsufficientPointsError",
    "InvariantViolationError",
    "LedgerEvent",
    "LedgerStore",
    "NotFoundError",
    "RedemptionResult",
    "Reward",
    "RewardClaim",
    "RewardRedemptionProcessor",
    "Rule",
    "RuleViolation",
    "RuleViolationRecorder",
    "StructuredLogger",
    "Task",
    "TaskCompletionTracker",
    "ToggleResult",
    "TransientStoreError",
    "ViolationResult",
]
