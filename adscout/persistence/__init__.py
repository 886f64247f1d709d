"""Persistence layer for adscout sessions and execution logs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AdScoutConfig, load_config
from .inmemory import InMemorySessionRepository
from .models import (
    ExecutionLogEntry,
    LogStatus,
    SessionRecord,
    SessionState,
    normalize_status,
)
from .repository import SessionRepository
from .sqlite import SQLiteSessionRepository

_repository_instance: SessionRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[AdScoutConfig] = None
) -> SessionRepository:
    """Factory function to obtain a session repository.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via ``ADSCOUT_DATABASE_URL`` or ``DATABASE_URL``, or from the
    loaded configuration. When no database is configured an in-memory
    repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ADSCOUT_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemorySessionRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteSessionRepository(path)
    elif database_url.startswith(("postgres://", "postgresql://")):
        from .postgres import PostgresSessionRepository

        _repository_instance = PostgresSessionRepository(database_url)
    else:
        raise ValueError(f"Unsupported database URL: {database_url}")
    return _repository_instance


__all__ = [
    "ExecutionLogEntry",
    "InMemorySessionRepository",
    "LogStatus",
    "SQLiteSessionRepository",
    "SessionRecord",
    "SessionRepository",
    "SessionState",
    "get_repository",
    "normalize_status",
]
