"""Operational utilities for ChorePoints."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAME = "chorepoints"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class StructuredLogger:
    """Write JSON lines log entries for ledger inspection.

    Every entry is kept in memory (see :meth:`tail`), optionally appended to
    ``path`` and forwarded to the ``chorepoints`` stdlib logger at ``level``.
    """

    def __init__(self, *, path: Path | str | None = None, logger: Optional[logging.Logger] = None) -> None:
        self.path = Path(path) if path else None
        self._logger = logger or logging.getLogger(LOGGER_NAME)
        self._entries: list[dict] = []
        self._lock = threading.Lock()

    def log(self, event_type: str, *, level: str = "info", **fields: object) -> dict:
        timestamp = datetime.now(timezone.utc).isoformat()
        entry = {"timestamp": timestamp, "event": event_type, "level": level, **fields}
        line = json.dumps(entry, default=str)
        with self._lock:
            self._entries.append(entry)
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        self._logger.log(_LEVELS.get(level, logging.INFO), line)
        return entry

    def tail(self, limit: int = 50, *, event: str | None = None) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        if event is not None:
            entries = [entry for entry in entries if entry["event"] == event]
        return tuple(entries[-limit:])


__all__ = ["LOGGER_NAME", "StructuredLogger"]
