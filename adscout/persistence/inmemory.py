"""In-memory implementation of the session repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..errors import SessionClosedError, SessionExistsError, SessionNotFoundError
from .models import ExecutionLogEntry, SessionRecord, SessionState, utcnow
from .repository import SessionRepository


class InMemorySessionRepository(SessionRepository):
    """Store sessions and execution logs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._logs: Dict[str, List[ExecutionLogEntry]] = {}
        self._log_id = 0

    def _open_session(self, session_id: str) -> SessionRecord:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.is_terminal:
            raise SessionClosedError(session_id, session.state.value)
        return session

    # ------------------------------------------------------------------
    async def create_session(
        self,
        session_id: str,
        user_id: str,
        current_step: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SessionRecord:
        if session_id in self._sessions:
            raise SessionExistsError(session_id)
        session = SessionRecord(
            id=session_id,
            user_id=user_id,
            current_step=current_step,
            metadata=metadata or {},
        )
        self._sessions[session_id] = session
        self._logs[session_id] = []
        return session.model_copy()

    async def update_progress(
        self,
        session_id: str,
        current_step: str,
        progress: int,
        state: SessionState = SessionState.RUNNING,
    ) -> None:
        session = self._open_session(session_id)
        self._sessions[session_id] = session.model_copy(
            update={
                "current_step": current_step,
                "progress": progress,
                "state": state,
                "updated_at": utcnow(),
            }
        )

    async def update_metadata(self, session_id: str, metadata: dict[str, Any]) -> None:
        session = self._open_session(session_id)
        session.metadata = {**session.metadata, **metadata}
        session.updated_at = utcnow()

    async def mark_session_completed(
        self, session_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        session = self._open_session(session_id)
        now = utcnow()
        self._sessions[session_id] = session.model_copy(
            update={
                "state": SessionState.COMPLETED,
                "progress": 100,
                "current_step": None,
                "metadata": {**session.metadata, **(metadata or {})},
                "updated_at": now,
                "completed_at": now,
            }
        )

    async def mark_session_failed(self, session_id: str, error: str) -> None:
        session = self._open_session(session_id)
        now = utcnow()
        self._sessions[session_id] = session.model_copy(
            update={
                "state": SessionState.FAILED,
                "current_step": "fatal_error",
                "metadata": {**session.metadata, "error": error},
                "updated_at": now,
                "completed_at": now,
            }
        )

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        if entry.session_id not in self._sessions:
            raise SessionNotFoundError(entry.session_id)
        self._log_id += 1
        stored = entry.model_copy(update={"id": self._log_id})
        self._logs[entry.session_id].append(stored)
        return stored

    async def get_session(self, session_id: str) -> SessionRecord | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(self, user_id: Optional[str] = None) -> list[SessionRecord]:
        return [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if user_id is None or s.user_id == user_id
        ]

    async def list_logs(self, session_id: str) -> list[ExecutionLogEntry]:
        return list(self._logs.get(session_id, []))
