"""Configuration constants for the ChorePoints ledger."""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATABASE_URL = os.environ.get("CHOREPOINTS_DATABASE_URL", "sqlite:///chorepoints.db")
LOCK_TIMEOUT_SECONDS = _float_env("CHOREPOINTS_LOCK_TIMEOUT", 5.0)
STORE_TIMEOUT_SECONDS = _float_env("CHOREPOINTS_STORE_TIMEOUT", 5.0)
RETRY_ATTEMPTS = _int_env("CHOREPOINTS_RETRY_ATTEMPTS", 3)
RETRY_BACKOFF_SECONDS = _float_env("CHOREPOINTS_RETRY_BACKOFF", 0.05)
EVENT_LOG_PATH: Optional[str] = os.environ.get("CHOREPOINTS_EVENT_LOG") or None
PARENT_SCOPE_HEADER = "X-Parent-Id"

__all__ = [
    "DATABASE_URL",
    "LOCK_TIMEOUT_SECONDS",
    "STORE_TIMEOUT_SECONDS",
    "RETRY_ATTEMPTS",
    "RETRY_BACKOFF_SECONDS",
    "EVENT_LOG_PATH",
    "PARENT_SCOPE_HEADER",
]
