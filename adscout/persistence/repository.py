"""Repository abstraction for session state and execution log persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .models import ExecutionLogEntry, SessionRecord, SessionState


class SessionRepository(Protocol):
    """Protocol for session persistence backends.

    Sessions are point-updated records; execution logs are append-only.
    Updates to a terminal session raise ``SessionClosedError``.
    """

    async def create_session(
        self,
        session_id: str,
        user_id: str,
        current_step: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SessionRecord:
        """Persist a new session in the ``initialized`` state."""

    async def update_progress(
        self,
        session_id: str,
        current_step: str,
        progress: int,
        state: SessionState = SessionState.RUNNING,
    ) -> None:
        """Update current step and progress together."""

    async def update_metadata(self, session_id: str, metadata: dict[str, Any]) -> None:
        """Merge ``metadata`` into the session metadata."""

    async def mark_session_completed(
        self, session_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        """Close the session successfully at 100% progress."""

    async def mark_session_failed(self, session_id: str, error: str) -> None:
        """Close the session as failed, recording ``error`` in metadata."""

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append an execution log entry and return it with its assigned id."""

    async def get_session(self, session_id: str) -> SessionRecord | None:
        """Retrieve a session by id."""

    async def list_sessions(self, user_id: Optional[str] = None) -> list[SessionRecord]:
        """Return persisted sessions, optionally filtered by owner."""

    async def list_logs(self, session_id: str) -> list[ExecutionLogEntry]:
        """Return the execution log of a session in append order."""
