"""PostgreSQL implementation of the session repository."""

from __future__ import annotations

import json
from typing import Any, Optional

import asyncpg

from ..errors import SessionClosedError, SessionExistsError, SessionNotFoundError
from .models import ExecutionLogEntry, SessionRecord, SessionState, utcnow
from .repository import SessionRepository


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class PostgresSessionRepository(SessionRepository):
    """Persist sessions and execution logs using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        try:
            await conn.set_type_codec(
                "jsonb", encoder=_dumps, decoder=json.loads, schema="pg_catalog"
            )
            if not self._initialized:
                await self._ensure_schema(conn)
                self._initialized = True
        except Exception:
            await conn.close()
            raise
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS agent_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                state TEXT NOT NULL
                    CHECK (state IN ('initialized', 'running', 'completed', 'failed')),
                progress INTEGER NOT NULL DEFAULT 0
                    CHECK (progress >= 0 AND progress <= 100),
                current_step TEXT,
                metadata JSONB NOT NULL DEFAULT '{}',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS agent_execution_logs (
                id SERIAL PRIMARY KEY,
                session_id TEXT NOT NULL REFERENCES agent_sessions(id) ON DELETE CASCADE,
                step_name TEXT NOT NULL,
                tool_name TEXT,
                status TEXT NOT NULL
                    CHECK (status IN ('started', 'completed', 'failed', 'skipped')),
                input_data JSONB,
                output_data JSONB,
                error_message TEXT,
                duration_ms INTEGER,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS agent_execution_logs_session_idx "
            "ON agent_execution_logs(session_id, id)"
        )

    async def _update_open(
        self, conn: asyncpg.Connection, session_id: str, assignments: str, *params: Any
    ) -> None:
        """Run an UPDATE that only touches non-terminal sessions."""
        idx = len(params) + 1
        status = await conn.execute(
            f"UPDATE agent_sessions SET {assignments} "
            f"WHERE id = ${idx} AND state NOT IN ('completed', 'failed')",
            *params,
            session_id,
        )
        if status.endswith(" 0"):
            state = await conn.fetchval(
                "SELECT state FROM agent_sessions WHERE id = $1", session_id
            )
            if state is None:
                raise SessionNotFoundError(session_id)
            raise SessionClosedError(session_id, state)

    @staticmethod
    def _row_to_session(row: asyncpg.Record) -> SessionRecord:
        return SessionRecord(**dict(row))

    # ------------------------------------------------------------------
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
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO agent_sessions
                    (id, user_id, state, progress, current_step, metadata,
                     created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                session.id,
                session.user_id,
                session.state.value,
                session.progress,
                session.current_step,
                session.metadata,
                session.created_at,
                session.updated_at,
            )
        except asyncpg.UniqueViolationError as exc:
            raise SessionExistsError(session_id) from exc
        finally:
            await conn.close()
        return session

    async def update_progress(
        self,
        session_id: str,
        current_step: str,
        progress: int,
        state: SessionState = SessionState.RUNNING,
    ) -> None:
        conn = await self._connect()
        try:
            await self._update_open(
                conn,
                session_id,
                "current_step = $1, progress = $2, state = $3, updated_at = $4",
                current_step,
                progress,
                SessionState(state).value,
                utcnow(),
            )
        finally:
            await conn.close()

    async def update_metadata(self, session_id: str, metadata: dict[str, Any]) -> None:
        conn = await self._connect()
        try:
            await self._update_open(
                conn,
                session_id,
                "metadata = metadata || $1::jsonb, updated_at = $2",
                metadata,
                utcnow(),
            )
        finally:
            await conn.close()

    async def mark_session_completed(
        self, session_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        now = utcnow()
        conn = await self._connect()
        try:
            await self._update_open(
                conn,
                session_id,
                "state = $1, progress = 100, current_step = NULL, "
                "metadata = metadata || $2::jsonb, updated_at = $3, completed_at = $3",
                SessionState.COMPLETED.value,
                metadata or {},
                now,
            )
        finally:
            await conn.close()

    async def mark_session_failed(self, session_id: str, error: str) -> None:
        now = utcnow()
        conn = await self._connect()
        try:
            await self._update_open(
                conn,
                session_id,
                "state = $1, current_step = 'fatal_error', "
                "metadata = metadata || $2::jsonb, updated_at = $3, completed_at = $3",
                SessionState.FAILED.value,
                {"error": error},
                now,
            )
        finally:
            await conn.close()

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        record = entry.to_record()
        conn = await self._connect()
        try:
            log_id = await conn.fetchval(
                """
                INSERT INTO agent_execution_logs
                    (session_id, step_name, tool_name, status, input_data,
                     output_data, error_message, duration_ms, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING id
                """,
                record["session_id"],
                record["step_name"],
                record["tool_name"],
                record["status"],
                record["input_data"],
                record["output_data"],
                record["error_message"],
                record["duration_ms"],
                record["created_at"],
            )
        finally:
            await conn.close()
        return entry.model_copy(update={"id": log_id})

    async def get_session(self, session_id: str) -> SessionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM agent_sessions WHERE id = $1", session_id
            )
        finally:
            await conn.close()
        return self._row_to_session(row) if row else None

    async def list_sessions(self, user_id: Optional[str] = None) -> list[SessionRecord]:
        conn = await self._connect()
        try:
            if user_id is None:
                rows = await conn.fetch(
                    "SELECT * FROM agent_sessions ORDER BY created_at"
                )
            else:
                rows = await conn.fetch(
                    "SELECT * FROM agent_sessions WHERE user_id = $1 ORDER BY created_at",
                    user_id,
                )
        finally:
            await conn.close()
        return [self._row_to_session(r) for r in rows]

    async def list_logs(self, session_id: str) -> list[ExecutionLogEntry]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM agent_execution_logs WHERE session_id = $1 ORDER BY id",
                session_id,
            )
        finally:
            await conn.close()
        return [ExecutionLogEntry.from_record(dict(r)) for r in rows]
