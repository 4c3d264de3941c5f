"""Operational utilities for AllowanceTracker."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .clock import now

LOGGER_NAME = "allowancetracker"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the package logger."""

    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    _configured = True


class HealthMonitor:
    """Aggregate runtime health information for status pages."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine
        self.schema_initialized_at: Optional[datetime] = None

    def mark_schema_initialized(self, timestamp: datetime | None = None) -> None:
        self.schema_initialized_at = timestamp or now()

    def database_online(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logging.getLogger(LOGGER_NAME).exception("database health check failed")
            return False
        return True

    def status(self) -> dict:
        online = self.database_online()
        return {
            "status": "ok" if online else "degraded",
            "database": "ok" if online else "down",
            "schema_initialized_at": (
                self.schema_initialized_at.isoformat() if self.schema_initialized_at else None
            ),
        }


class StructuredLogger:
    """Write JSON lines log entries and forward them to the package logger."""

    def __init__(self, *, path: Path | None = None, max_entries: int = 1000) -> None:
        self.path = path
        self.max_entries = max_entries
        self._entries: list[dict] = []
        self._logger = logging.getLogger(LOGGER_NAME)

    def log(self, event_type: str, *, level: int = logging.INFO, **fields: object) -> dict:
        entry = {"timestamp": now().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]
        line = json.dumps(entry, default=str)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        self._logger.log(level, line)
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])


__all__ = ["HealthMonitor", "LOGGER_NAME", "StructuredLogger", "configure_logging"]
