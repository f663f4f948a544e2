"""Scoped lookups shared by the ledger components and the read side."""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Type, TypeVar

from sqlmodel import Session, desc, select

from .exceptions import InvariantViolationError, NotFoundError
from .persistence import Child, ChildTask, Reward, RewardClaim, Rule, RuleViolation, Task, lock_child

Template = TypeVar("Template", Task, Rule, Reward)


def load_child(
    session: Session,
    child_id: int,
    *,
    parent_id: Optional[str] = None,
    for_update: bool = False,
) -> Child:
    """Return the child or raise :class:`NotFoundError` when missing or outside ``parent_id``."""

    child = lock_child(session, child_id) if for_update else session.get(Child, child_id)
    if child is None or (parent_id is not None and child.parent_id != parent_id):
        raise NotFoundError(f"Child {child_id} does not exist.")
    return child


def load_template(session: Session, model: Type[Template], template_id: int, *, owner: Child) -> Template:
    """Return a task, rule or reward owned by the same parent as ``owner``."""

    template = session.get(model, template_id)
    if template is None or template.parent_id != owner.parent_id:
        raise NotFoundError(f"{model.__name__} {template_id} does not exist.")
    return template


def find_task_instance(session: Session, child_id: int, task_id: int, due_date: date) -> ChildTask:
    rows = session.exec(
        select(ChildTask)
        .where(ChildTask.child_id == child_id)
        .where(ChildTask.task_id == task_id)
        .where(ChildTask.due_date == due_date)
    ).all()
    if not rows:
        raise NotFoundError(
            f"Task {task_id} is not scheduled for child {child_id} on {due_date.isoformat()}."
        )
    if len(rows) > 1:
        raise InvariantViolationError(
            f"Found {len(rows)} task instances for child {child_id}, task {task_id} on {due_date.isoformat()}."
        )
    return rows[0]


def tasks_for_day(session: Session, child_id: int, day: date) -> List[tuple[ChildTask, Task]]:
    """Return the child's task instances due on ``day`` joined with their templates."""

    rows = session.exec(
        select(ChildTask, Task)
        .where(ChildTask.task_id == Task.id)
        .where(ChildTask.child_id == child_id)
        .where(ChildTask.due_date == day)
        .order_by(Task.label)
    ).all()
    return [(instance, task) for instance, task in rows]


def violations_for_child(session: Session, child_id: int, *, limit: Optional[int] = None) -> List[RuleViolation]:
    query = (
        select(RuleViolation)
        .where(RuleViolation.child_id == child_id)
        .order_by(desc(RuleViolation.violated_at), desc(RuleViolation.id))
    )
    if limit is not None:
        query = query.limit(limit)
    return list(session.exec(query).all())


def redemptions_for_child(session: Session, child_id: int, *, limit: Optional[int] = None) -> List[RewardClaim]:
    query = (
        select(RewardClaim)
        .where(RewardClaim.child_id == child_id)
        .order_by(desc(RewardClaim.claimed_at), desc(RewardClaim.id))
    )
    if limit is not None:
        query = query.limit(limit)
    return list(session.exec(query).all())


def children_for_parent(session: Session, parent_id: str) -> List[Child]:
    return list(session.exec(select(Child).where(Child.parent_id == parent_id).order_by(Child.name)).all())


def templates_for_parent(session: Session, model: Type[Template], parent_id: str) -> List[Template]:
    return list(session.exec(select(model).where(model.parent_id == parent_id).order_by(model.label)).all())


__all__ = [
    "load_child",
    "load_template",
    "find_task_instance",
    "tasks_for_day",
    "violations_for_child",
    "redemptions_for_child",
    "children_for_parent",
    "templates_for_parent",
]
