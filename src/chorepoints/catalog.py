"""Parent-side management of children, templates and task schedules.

These are the operations the management screens call: they create and edit
the records the ledger works against, but never touch a child's balance
after creation.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .exceptions import NotFoundError
from .persistence import Child, ChildTask, LedgerStore, Reward, RewardClaim, Rule, RuleViolation, Task
from .points import PointsLike, require_positive, to_points
from .queries import (
    Template,
    children_for_parent,
    find_task_instance,
    load_child,
    load_template,
    redemptions_for_child,
    tasks_for_day,
    templates_for_parent,
    violations_for_child,
)

_CHILD_FIELDS = ("name", "age", "avatar_url", "custom_color")


class Catalog:
    """CRUD and scheduling for one store, always scoped to a parent account."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def add_child(
        self,
        parent_id: str,
        name: str,
        *,
        age: Optional[int] = None,
        avatar_url: Optional[str] = None,
        custom_color: Optional[str] = None,
        points: PointsLike = 0,
    ) -> Child:
        name = name.strip()
        if not name:
            raise ValueError("A child needs a name.")
        starting = require_positive(to_points(points), allow_zero=True)
        child = Child(
            parent_id=parent_id,
            name=name,
            age=age,
            avatar_url=avatar_url or None,
            custom_color=custom_color or None,
            points=starting,
        )
        with self._store.session() as session:
            session.add(child)
            session.flush()
        return child

    def update_child(self, child_id: int, *, parent_id: Optional[str] = None, **changes: Any) -> Child:
        unknown = set(changes) - set(_CHILD_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update child fields: {', '.join(sorted(unknown))}")
        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, parent_id=parent_id, for_update=True)
            for key, value in changes.items():
                setattr(child, key, value)
            session.add(child)
        return child

    def delete_child(self, child_id: int, *, parent_id: Optional[str] = None) -> None:
        """Delete a child together with its task instances, violations and redemptions."""

        with self._store.child_transaction(child_id) as session:
            child = load_child(session, child_id, parent_id=parent_id, for_update=True)
            session.exec(delete(ChildTask).where(ChildTask.child_id == child_id))
            session.exec(delete(RuleViolation).where(RuleViolation.child_id == child_id))
            session.exec(delete(RewardClaim).where(RewardClaim.child_id == child_id))
            session.delete(child)

    def get_child(self, child_id: int, *, parent_id: Optional[str] = None) -> Child:
        with self._store.session() as session:
            return load_child(session, child_id, parent_id=parent_id)

    def list_children(self, parent_id: str) -> List[Child]:
        with self._store.session() as session:
            return children_for_parent(session, parent_id)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def add_task(self, parent_id: str, label: str, points_reward: PointsLike, *, is_daily: bool = True) -> Task:
        reward = require_positive(to_points(points_reward))
        return self._add(Task(parent_id=parent_id, label=_label(label), points_reward=reward, is_daily=is_daily))

    def add_rule(self, parent_id: str, label: str, points_penalty: PointsLike) -> Rule:
        penalty = require_positive(to_points(points_penalty))
        return self._add(Rule(parent_id=parent_id, label=_label(label), points_penalty=penalty))

    def add_reward(self, parent_id: str, label: str, cost: PointsLike) -> Reward:
        return self._add(Reward(parent_id=parent_id, label=_label(label), cost=require_positive(to_points(cost))))

    def update_task(
        self,
        task_id: int,
        *,
        parent_id: str,
        label: Optional[str] = None,
        points_reward: Optional[PointsLike] = None,
        is_daily: Optional[bool] = None,
    ) -> Task:
        changes: Dict[str, Any] = {}
        if label is not None:
            changes["label"] = _label(label)
        if points_reward is not None:
            changes["points_reward"] = require_positive(to_points(points_reward))
        if is_daily is not None:
            changes["is_daily"] = is_daily
        return self._update(Task, task_id, parent_id, changes)

    def update_rule(
        self,
        rule_id: int,
        *,
        parent_id: str,
        label: Optional[str] = None,
        points_penalty: Optional[PointsLike] = None,
    ) -> Rule:
        changes: Dict[str, Any] = {}
        if label is not None:
            changes["label"] = _label(label)
        if points_penalty is not None:
            changes["points_penalty"] = require_positive(to_points(points_penalty))
        return self._update(Rule, rule_id, parent_id, changes)

    def update_reward(
        self,
        reward_id: int,
        *,
        parent_id: str,
        label: Optional[str] = None,
        cost: Optional[PointsLike] = None,
    ) -> Reward:
        changes: Dict[str, Any] = {}
        if label is not None:
            changes["label"] = _label(label)
        if cost is not None:
            changes["cost"] = require_positive(to_points(cost))
        return self._update(Reward, reward_id, parent_id, changes)

    def delete_task(self, task_id: int, *, parent_id: str) -> None:
        with self._store.session() as session:
            task = _owned(session, Task, task_id, parent_id)
            session.exec(delete(ChildTask).where(ChildTask.task_id == task_id))
            session.delete(task)

    def delete_rule(self, rule_id: int, *, parent_id: str) -> None:
        """Delete a rule; past violations keep their snapshot and lose the link."""

        with self._store.session() as session:
            rule = _owned(session, Rule, rule_id, parent_id)
            session.exec(update(RuleViolation).where(RuleViolation.rule_id == rule_id).values(rule_id=None))
            session.delete(rule)

    def delete_reward(self, reward_id: int, *, parent_id: str) -> None:
        with self._store.session() as session:
            reward = _owned(session, Reward, reward_id, parent_id)
            session.exec(update(RewardClaim).where(RewardClaim.reward_id == reward_id).values(reward_id=None))
            session.delete(reward)

    def list_tasks(self, parent_id: str) -> List[Task]:
        with self._store.session() as session:
            return templates_for_parent(session, Task, parent_id)

    def list_rules(self, parent_id: str) -> List[Rule]:
        with self._store.session() as session:
            return templates_for_parent(session, Rule, parent_id)

    def list_rewards(self, parent_id: str) -> List[Reward]:
        with self._store.session() as session:
            return templates_for_parent(session, Reward, parent_id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule_task(
        self,
        child_id: int,
        task_id: int,
        due_date: date,
        *,
        parent_id: Optional[str] = None,
    ) -> ChildTask:
        """Bind a task to a child for ``due_date``; an existing binding is returned as is."""

        try:
            with self._store.session() as session:
                child = load_child(session, child_id, parent_id=parent_id)
                load_template(session, Task, task_id, owner=child)
                try:
                    return find_task_instance(session, child_id, task_id, due_date)
                except NotFoundError:
                    pass
                instance = ChildTask(child_id=child_id, task_id=task_id, due_date=due_date)
                session.add(instance)
                session.flush()
                return instance
        except IntegrityError:
            # Lost a race with a concurrent scheduler for the same tuple.
            with self._store.session() as session:
                return find_task_instance(session, child_id, task_id, due_date)

    def schedule_daily_tasks(self, child_id: int, day: date, *, parent_id: Optional[str] = None) -> List[ChildTask]:
        """Make sure every daily task of the child's parent has an instance on ``day``."""

        with self._store.session() as session:
            child = load_child(session, child_id, parent_id=parent_id)
            daily = session.exec(
                select(Task).where(Task.parent_id == child.parent_id).where(Task.is_daily == True)  # noqa: E712
            ).all()
            task_ids = [task.id for task in daily if task.id is not None]
        return [self.schedule_task(child_id, task_id, day) for task_id in task_ids]

    def schedule_range(
        self,
        child_id: int,
        task_id: int,
        start: date,
        end: date,
        *,
        parent_id: Optional[str] = None,
    ) -> List[ChildTask]:
        """Schedule ``task_id`` on every day from ``start`` to ``end`` inclusive."""

        if end < start:
            raise ValueError("end must not be before start")
        instances = []
        current = start
        while current <= end:
            instances.append(self.schedule_task(child_id, task_id, current, parent_id=parent_id))
            current += timedelta(days=1)
        return instances

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def tasks_for_day(self, child_id: int, day: date, *, parent_id: Optional[str] = None) -> List[tuple[ChildTask, Task]]:
        with self._store.session() as session:
            load_child(session, child_id, parent_id=parent_id)
            return tasks_for_day(session, child_id, day)

    def violation_history(
        self, child_id: int, *, parent_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[RuleViolation]:
        with self._store.session() as session:
            load_child(session, child_id, parent_id=parent_id)
            return violations_for_child(session, child_id, limit=limit)

    def redemption_history(
        self, child_id: int, *, parent_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[RewardClaim]:
        with self._store.session() as session:
            load_child(session, child_id, parent_id=parent_id)
            return redemptions_for_child(session, child_id, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _add(self, template: Template) -> Template:
        with self._store.session() as session:
            session.add(template)
            session.flush()
        return template

    def _update(self, model: Type[Template], template_id: int, parent_id: str, changes: Dict[str, Any]) -> Template:
        with self._store.session() as session:
            template = _owned(session, model, template_id, parent_id)
            for key, value in changes.items():
                setattr(template, key, value)
            session.add(template)
        return template


def _label(raw: str) -> str:
    label = raw.strip()
    if not label:
        raise ValueError("A label is required.")
    return label


def _owned(session: Any, model: Type[Template], template_id: int, parent_id: str) -> Template:
    template = session.get(model, template_id)
    if template is None or template.parent_id != parent_id:
        raise NotFoundError(f"{model.__name__} {template_id} does not exist.")
    return template


__all__ = ["Catalog"]
