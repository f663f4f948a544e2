"""FastAPI JSON adapter over the ChorePoints ledger operations.

Run with ``uvicorn chorepoints.webapp:create_app --factory``. Authentication
happens upstream; the proxy forwards the signed-in parent as the
``X-Parent-Id`` header, which scopes every lookup.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

from .config import PARENT_SCOPE_HEADER
from .exceptions import (
    ChorePointsError,
    InsufficientPointsError,
    InvariantViolationError,
    NotFoundError,
    TransientStoreError,
)
from .persistence import LedgerStore, RewardClaim, RuleViolation
from .service import ChoreLedger


class ViolationRequest(SQLModel):
    rule_id: int


class RedemptionRequest(SQLModel):
    reward_id: int


_ERROR_STATUS = (
    (NotFoundError, 404, "not_found"),
    (InsufficientPointsError, 409, "insufficient_points"),
    (TransientStoreError, 503, "transient_store_failure"),
    (InvariantViolationError, 500, "invariant_violation"),
)


def _isoformat(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def serialize_violation(record: RuleViolation) -> Dict[str, Any]:
    return {
        "id": record.id,
        "child_id": record.child_id,
        "rule_id": record.rule_id,
        "rule_label": record.rule_label,
        "points_penalty": record.points_penalty,
        "violated_at": _isoformat(record.violated_at),
    }


def serialize_redemption(record: RewardClaim) -> Dict[str, Any]:
    return {
        "id": record.id,
        "child_id": record.child_id,
        "reward_id": record.reward_id,
        "reward_label": record.reward_label,
        "cost": record.cost,
        "claimed_at": _isoformat(record.claimed_at),
    }


def error_response(exc: ChorePointsError) -> JSONResponse:
    for error_type, status_code, kind in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code, kind = 500, "error"
    body: Dict[str, Any] = {"error": kind, "detail": str(exc)}
    if isinstance(exc, InsufficientPointsError):
        body.update(balance=exc.balance, cost=exc.cost)
    return JSONResponse(body, status_code=status_code)


def create_app(ledger: Optional[ChoreLedger] = None) -> FastAPI:
    if ledger is None:
        store = LedgerStore()
        store.create_db_and_tables()
        ledger = ChoreLedger(store)

    app = FastAPI(title="ChorePoints")
    app.state.ledger = ledger

    @app.exception_handler(ChorePointsError)
    async def handle_ledger_error(_request: Request, exc: ChorePointsError) -> JSONResponse:
        return error_response(exc)

    @app.get("/children/{child_id}/balance")
    def child_balance(
        child_id: int,
        parent_id: Optional[str] = Header(default=None, alias=PARENT_SCOPE_HEADER),
    ) -> Dict[str, Any]:
        return {"child_id": child_id, "points": ledger.get_child_balance(child_id, parent_id=parent_id)}

    @app.post("/children/{child_id}/tasks/{task_id}/toggle")
    def toggle_task(
        child_id: int,
        task_id: int,
        due_date: Optional[date] = None,
        parent_id: Optional[str] = Header(default=None, alias=PARENT_SCOPE_HEADER),
    ) -> Dict[str, Any]:
        result = ledger.toggle_task_completion(child_id, task_id, due_date, parent_id=parent_id)
        return {
            "child_id": child_id,
            "task_id": task_id,
            "due_date": result.instance.due_date.isoformat(),
            "is_completed": result.is_completed,
            "completed_at": _isoformat(result.instance.completed_at),
            "new_balance": result.new_balance,
        }

    @app.post("/children/{child_id}/violations")
    def report_violation(
        child_id: int,
        payload: ViolationRequest,
        parent_id: Optional[str] = Header(default=None, alias=PARENT_SCOPE_HEADER),
    ) -> Dict[str, Any]:
        result = ledger.report_rule_violation(child_id, payload.rule_id, parent_id=parent_id)
        return {
            "new_balance": result.new_balance,
            "penalty_applied": result.penalty_applied,
            "violation": serialize_violation(result.record),
        }

    @app.post("/children/{child_id}/redemptions")
    def redeem_reward(
        child_id: int,
        payload: RedemptionRequest,
        parent_id: Optional[str] = Header(default=None, alias=PARENT_SCOPE_HEADER),
    ) -> Dict[str, Any]:
        result = ledger.redeem_reward(child_id, payload.reward_id, parent_id=parent_id)
        return {"new_balance": result.new_balance, "redemption": serialize_redemption(result.record)}

    return app


__all__ = [
    "create_app",
    "error_response",
    "serialize_redemption",
    "serialize_violation",
    "RedemptionRequest",
    "ViolationRequest",
]
