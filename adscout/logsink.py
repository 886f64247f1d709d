"""Best-effort, non-blocking execution log sink."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from .persistence import ExecutionLogEntry, SessionRepository

logger = logging.getLogger(__name__)


class ExecutionLogSink:
    """Queue execution log entries and persist them from a background task.

    ``append`` never blocks and never raises because of the storage layer: a
    single writer drains the queue in FIFO order and reports write failures
    to the process log only.
    """

    def __init__(self, repository: SessionRepository) -> None:
        self._repository = repository
        self._queue: asyncio.Queue[ExecutionLogEntry] = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self.failed_writes = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the background writer (idempotent)."""
        if not self.running:
            self._worker = asyncio.create_task(self._drain(), name="execution-log-sink")

    def append(self, entry: ExecutionLogEntry) -> None:
        """Hand ``entry`` to the writer without waiting for it to be stored."""
        if not self.running:
            raise RuntimeError("ExecutionLogSink.append called before start()")
        self._queue.put_nowait(entry)

    async def flush(self) -> None:
        """Wait until every queued entry has been written or dropped."""
        if self.running:
            await self._queue.join()

    async def close(self) -> None:
        """Flush pending entries and stop the writer."""
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    async def __aenter__(self) -> "ExecutionLogSink":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _drain(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._repository.append_log(entry)
            except Exception:
                self.failed_writes += 1
                logger.exception(
                    f"Failed to write log entry '{entry.step_name}' "
                    f"({entry.status.value}) for session_id={entry.session_id}"
                )
            finally:
                self._queue.task_done()
