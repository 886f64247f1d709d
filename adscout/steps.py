"""Step execution: one remote call wrapped with timing and log entries."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sized
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import StepFailedError, describe_error
from .logsink import ExecutionLogSink
from .persistence import ExecutionLogEntry, LogStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_summary(payload: Any) -> dict[str, Any]:
    """Output summary used when a step does not provide its own."""
    if isinstance(payload, Sized) and not isinstance(payload, (str, bytes)):
        return {"count": len(payload)}
    return {"has_result": payload is not None}


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


class StepExecutor:
    """Run steps for one session and record every attempt in the execution log."""

    def __init__(self, session_id: str, sink: ExecutionLogSink) -> None:
        self.session_id = session_id
        self._sink = sink

    def _record(self, step_name: str, tool_id: str, status: LogStatus, **fields: Any) -> None:
        self._sink.append(
            ExecutionLogEntry(
                session_id=self.session_id,
                step_name=step_name,
                tool_name=tool_id,
                status=status,
                **fields,
            )
        )

    async def execute(
        self,
        step_name: str,
        tool_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        progress: int,
        completed_progress: Optional[int] = None,
        sub_step: Optional[str] = None,
        input_summary: Optional[dict[str, Any]] = None,
        summarize: Optional[Callable[[T], dict[str, Any]]] = None,
        describe: Optional[Callable[[T], str]] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """Invoke ``operation`` and return its payload.

        Writes a ``started`` entry before the call and exactly one
        ``completed`` or ``failed`` entry after it. Any exception, including a
        timeout, is raised as :class:`StepFailedError`.
        """
        end_progress = progress if completed_progress is None else completed_progress
        self._record(
            step_name,
            tool_id,
            LogStatus.STARTED,
            input_data=input_summary,
            progress_percent=progress,
            sub_step=sub_step,
        )
        logger.info(f"Step '{step_name}' started for session_id={self.session_id}")

        started = time.perf_counter()
        try:
            if timeout is not None:
                payload = await asyncio.wait_for(operation(), timeout=timeout)
            else:
                payload = await operation()
        except Exception as exc:
            duration_ms = _elapsed_ms(started)
            if isinstance(exc, asyncio.TimeoutError):
                message = f"Timed out after {timeout}s"
            else:
                message = describe_error(exc)
            self._record(
                step_name,
                tool_id,
                LogStatus.FAILED,
                input_data=input_summary,
                error_message=message,
                duration_ms=duration_ms,
                progress_percent=end_progress,
            )
            logger.warning(
                f"Step '{step_name}' failed after {duration_ms}ms "
                f"for session_id={self.session_id}: {message}"
            )
            raise StepFailedError(step_name, exc) from exc

        duration_ms = _elapsed_ms(started)
        output_data, note = self._summarize(step_name, payload, summarize, describe)
        self._record(
            step_name,
            tool_id,
            LogStatus.COMPLETED,
            input_data=input_summary,
            output_data=output_data,
            duration_ms=duration_ms,
            progress_percent=end_progress,
            sub_step=note,
        )
        logger.info(
            f"Step '{step_name}' completed in {duration_ms}ms "
            f"for session_id={self.session_id}"
        )
        return payload

    def _summarize(
        self,
        step_name: str,
        payload: Any,
        summarize: Optional[Callable[[Any], dict[str, Any]]],
        describe: Optional[Callable[[Any], str]],
    ) -> tuple[dict[str, Any], Optional[str]]:
        """Summary and note for the completed entry; summarizer errors fall back to defaults."""
        output_data = None
        if summarize is not None:
            try:
                output_data = summarize(payload)
            except Exception:
                logger.exception(f"Summary for step '{step_name}' failed")
        if output_data is None:
            output_data = default_summary(payload)

        note = None
        if describe is not None:
            try:
                note = describe(payload)
            except Exception:
                logger.exception(f"Description for step '{step_name}' failed")
        return output_data, note

    def complete_without_work(
        self,
        step_name: str,
        tool_id: str,
        *,
        progress: int,
        completed_progress: Optional[int] = None,
        reason: str,
    ) -> None:
        """Record a step that had nothing to process as started then completed."""
        self._record(
            step_name,
            tool_id,
            LogStatus.STARTED,
            progress_percent=progress,
            sub_step=reason,
        )
        self._record(
            step_name,
            tool_id,
            LogStatus.COMPLETED,
            output_data={"skipped": True, "processed": 0, "message": reason},
            duration_ms=0,
            progress_percent=progress if completed_progress is None else completed_progress,
            sub_step=reason,
        )
        logger.info(f"Step '{step_name}' had nothing to do: {reason}")

    def skip(self, step_name: str, tool_id: str, *, progress: int, reason: str) -> None:
        """Record a step that was not run at all as a single ``skipped`` entry."""
        self._record(
            step_name,
            tool_id,
            LogStatus.SKIPPED,
            duration_ms=0,
            progress_percent=progress,
            sub_step=reason,
        )
        logger.info(f"Step '{step_name}' skipped: {reason}")
