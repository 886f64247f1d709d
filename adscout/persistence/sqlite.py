"""SQLite implementation of the session repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..errors import SessionClosedError, SessionExistsError, SessionNotFoundError
from .models import ExecutionLogEntry, SessionRecord, SessionState, utcnow
from .repository import SessionRepository

_TERMINAL_STATES = (SessionState.COMPLETED.value, SessionState.FAILED.value)


def _dumps(value: Any) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value: str | None) -> Any:
    return json.loads(value) if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteSessionRepository(SessionRepository):
    """Persist sessions and execution logs using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS agent_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                state TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0
                    CHECK (progress >= 0 AND progress <= 100),
                current_step TEXT,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS agent_execution_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL REFERENCES agent_sessions(id),
                step_name TEXT NOT NULL,
                tool_name TEXT,
                status TEXT NOT NULL
                    CHECK (status IN ('started', 'completed', 'failed', 'skipped')),
                input_data TEXT,
                output_data TEXT,
                error_message TEXT,
                duration_ms INTEGER,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS agent_execution_logs_session_idx "
            "ON agent_execution_logs(session_id, id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> sqlite3.Cursor:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _update_open(self, session_id: str, assignments: str, *params: Any) -> None:
        """Run an UPDATE that only touches non-terminal sessions."""
        cur = self._execute(
            f"UPDATE agent_sessions SET {assignments} "
            "WHERE id = ? AND state NOT IN (?, ?)",
            *params,
            session_id,
            *_TERMINAL_STATES,
        )
        if cur.rowcount == 0:
            row = self._fetchone(
                "SELECT state FROM agent_sessions WHERE id = ?", session_id
            )
            if row is None:
                raise SessionNotFoundError(session_id)
            raise SessionClosedError(session_id, row["state"])

    def _merge_metadata(self, session_id: str, extra: dict[str, Any]) -> dict[str, Any]:
        row = self._fetchone(
            "SELECT metadata FROM agent_sessions WHERE id = ?", session_id
        )
        if row is None:
            raise SessionNotFoundError(session_id)
        return {**(_loads(row["metadata"]) or {}), **extra}

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=row["id"],
            user_id=row["user_id"],
            state=row["state"],
            progress=row["progress"],
            current_step=row["current_step"],
            metadata=_loads(row["metadata"]) or {},
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            completed_at=_parse_ts(row["completed_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_session(
        self,
        session_id: str,
        user_id: str,
        current_step: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SessionRecord:
        session = SessionRecord(
            id=session_id,
            user_id=user_id,
            current_step=current_step,
            metadata=metadata or {},
        )
        try:
            await asyncio.to_thread(
                self._execute,
                """
                INSERT INTO agent_sessions
                    (id, user_id, state, progress, current_step, metadata,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                session.id,
                session.user_id,
                session.state.value,
                session.progress,
                session.current_step,
                _dumps(session.metadata),
                session.created_at.isoformat(),
                session.updated_at.isoformat(),
            )
        except sqlite3.IntegrityError as exc:
            raise SessionExistsError(session_id) from exc
        return session

    async def update_progress(
        self,
        session_id: str,
        current_step: str,
        progress: int,
        state: SessionState = SessionState.RUNNING,
    ) -> None:
        await asyncio.to_thread(
            self._update_open,
            session_id,
            "current_step = ?, progress = ?, state = ?, updated_at = ?",
            current_step,
            progress,
            SessionState(state).value,
            utcnow().isoformat(),
        )

    async def update_metadata(self, session_id: str, metadata: dict[str, Any]) -> None:
        merged = await asyncio.to_thread(self._merge_metadata, session_id, metadata)
        await asyncio.to_thread(
            self._update_open,
            session_id,
            "metadata = ?, updated_at = ?",
            _dumps(merged),
            utcnow().isoformat(),
        )

    async def mark_session_completed(
        self, session_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        merged = await asyncio.to_thread(
            self._merge_metadata, session_id, metadata or {}
        )
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._update_open,
            session_id,
            "state = ?, progress = 100, current_step = NULL, metadata = ?, "
            "updated_at = ?, completed_at = ?",
            SessionState.COMPLETED.value,
            _dumps(merged),
            now,
            now,
        )

    async def mark_session_failed(self, session_id: str, error: str) -> None:
        merged = await asyncio.to_thread(
            self._merge_metadata, session_id, {"error": error}
        )
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._update_open,
            session_id,
            "state = ?, current_step = ?, metadata = ?, updated_at = ?, "
            "completed_at = ?",
            SessionState.FAILED.value,
            "fatal_error",
            _dumps(merged),
            now,
            now,
        )

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        record = entry.to_record()
        cur = await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO agent_execution_logs
                (session_id, step_name, tool_name, status, input_data,
                 output_data, error_message, duration_ms, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            record["session_id"],
            record["step_name"],
            record["tool_name"],
            record["status"],
            _dumps(record["input_data"]),
            _dumps(record["output_data"]),
            record["error_message"],
            record["duration_ms"],
            record["created_at"].isoformat(),
        )
        return entry.model_copy(update={"id": cur.lastrowid})

    async def get_session(self, session_id: str) -> SessionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM agent_sessions WHERE id = ?", session_id
        )
        return self._row_to_session(row) if row else None

    async def list_sessions(self, user_id: Optional[str] = None) -> list[SessionRecord]:
        if user_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT * FROM agent_sessions ORDER BY created_at"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM agent_sessions WHERE user_id = ? ORDER BY created_at",
                user_id,
            )
        return [self._row_to_session(r) for r in rows]

    async def list_logs(self, session_id: str) -> list[ExecutionLogEntry]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM agent_execution_logs WHERE session_id = ? ORDER BY id",
            session_id,
        )
        return [
            ExecutionLogEntry.from_record(
                {
                    "id": r["id"],
                    "session_id": r["session_id"],
                    "step_name": r["step_name"],
                    "tool_name": r["tool_name"],
                    "status": r["status"],
                    "input_data": _loads(r["input_data"]),
                    "output_data": _loads(r["output_data"]),
                    "error_message": r["error_message"],
                    "duration_ms": r["duration_ms"],
                    "created_at": _parse_ts(r["created_at"]),
                }
            )
            for r in rows
        ]
