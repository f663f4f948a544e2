"""Persistence and SQLModel definitions for the ChorePoints ledger."""
from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint, event
from sqlalchemy.exc import OperationalError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .config import DATABASE_URL, LOCK_TIMEOUT_SECONDS, STORE_TIMEOUT_SECONDS
from .exceptions import TransientStoreError

# ---------------------------------------------------------------------------
# Clock helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    """Timezone-aware local time; its date is what counts as "today"."""

    return datetime.now().astimezone()


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
def _child_fk() -> Any:
    return Field(
        sa_column=Column(Integer, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True)
    )


class Child(SQLModel, table=True):
    __tablename__ = "children"

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str = Field(index=True)
    name: str
    age: Optional[int] = None
    avatar_url: Optional[str] = None
    custom_color: Optional[str] = None
    points: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str = Field(index=True)
    label: str
    points_reward: int
    is_daily: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class ChildTask(SQLModel, table=True):
    """One scheduled occurrence of a task for a child on a due date."""

    __tablename__ = "child_tasks"
    __table_args__ = (UniqueConstraint("child_id", "task_id", "due_date", name="uq_child_task_due_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = _child_fk()
    task_id: int = Field(
        sa_column=Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    due_date: date = Field(index=True)
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    points_awarded: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class Rule(SQLModel, table=True):
    __tablename__ = "rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str = Field(index=True)
    label: str
    points_penalty: int
    created_at: datetime = Field(default_factory=utcnow)


class RuleViolation(SQLModel, table=True):
    """Append-only violation record; penalty and label are event-time snapshots."""

    __tablename__ = "child_rules_violations"

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = _child_fk()
    rule_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("rules.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    rule_label: str = ""
    points_penalty: int
    violated_at: datetime = Field(default_factory=utcnow)


class Reward(SQLModel, table=True):
    __tablename__ = "rewards"

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: str = Field(index=True)
    label: str
    cost: int
    created_at: datetime = Field(default_factory=utcnow)


class RewardClaim(SQLModel, table=True):
    """Append-only redemption record; cost and label are event-time snapshots."""

    __tablename__ = "child_rewards_claimed"

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = _child_fk()
    reward_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("rewards.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    reward_label: str = ""
    cost: int
    claimed_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
def _configure_sqlite_connection(dbapi_connection: Any, _record: Any) -> None:
    # Hand transaction control to the "begin" listener below.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _begin_immediate(connection: Any) -> None:
    # Take the database write lock before the first read so a balance check
    # cannot go stale, even across processes sharing the file.
    connection.exec_driver_sql("BEGIN IMMEDIATE")


class LedgerStore:
    """Engine wrapper that serialises every balance mutation per child.

    :meth:`child_transaction` holds a per-child lock around a single database
    transaction. Locks are keyed by child id, so work for different children
    never contends. Waiting on the lock or on the database is bounded; a
    timeout surfaces as :class:`~chorepoints.exceptions.TransientStoreError`.

    On SQLite every transaction starts with ``BEGIN IMMEDIATE``, which also
    serialises writers in other processes or stores using the same file. A lock
    entry lives only while some caller holds or waits on it.
    """

    def __init__(
        self,
        url: str = DATABASE_URL,
        *,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        store_timeout: float = STORE_TIMEOUT_SECONDS,
        echo: bool = False,
    ) -> None:
        self.url = url
        self.lock_timeout = lock_timeout
        connect_args: Dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": store_timeout}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine, "begin", _begin_immediate)
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
        self._registry_lock = threading.Lock()

    def create_db_and_tables(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def _lock_for(self, child_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(child_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[child_id] = lock
            return lock

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session and commit on success; no per-child lock is taken."""

        with Session(self.engine, expire_on_commit=False) as session:
            try:
                yield session
                session.commit()
            except OperationalError as exc:
                raise TransientStoreError(f"Ledger store unavailable: {exc.orig}") from exc

    @contextmanager
    def child_transaction(self, child_id: int) -> Iterator[Session]:
        """Run one atomic read-modify-write unit for ``child_id``.

        Anything raised inside the block rolls the whole unit back.
        """

        lock = self._lock_for(child_id)
        if not lock.acquire(timeout=self.lock_timeout):
            raise TransientStoreError(
                f"Timed out after {self.lock_timeout:.2f}s waiting for the ledger of child {child_id}."
            )
        try:
            with self.session() as session:
                yield session
        finally:
            lock.release()


def lock_child(session: Session, child_id: int) -> Optional[Child]:
    """Load ``child_id`` for update (row lock where the dialect supports it)."""

    return session.exec(select(Child).where(Child.id == child_id).with_for_update()).first()


__all__ = [
    "Child",
    "Task",
    "ChildTask",
    "Rule",
    "RuleViolation",
    "Reward",
    "RewardClaim",
    "LedgerStore",
    "lock_child",
    "now_local",
    "utcnow",
]
