"""Data models for persisted session state and execution logs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import TOOL_ICONS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Lifecycle state of a workflow session."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


class LogStatus(str, Enum):
    """Closed set of statuses accepted by the execution log."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not LogStatus.STARTED


_STATUS_ALIASES: dict[str, LogStatus] = {
    "running": LogStatus.STARTED,
    "in_progress": LogStatus.STARTED,
    "pending": LogStatus.STARTED,
    "success": LogStatus.COMPLETED,
    "succeeded": LogStatus.COMPLETED,
    "done": LogStatus.COMPLETED,
    "warning": LogStatus.FAILED,
    "error": LogStatus.FAILED,
    "cancelled": LogStatus.FAILED,
    "timeout": LogStatus.FAILED,
    "skip": LogStatus.SKIPPED,
}


def normalize_status(label: Union[str, LogStatus, None]) -> LogStatus:
    """Map any status label onto one of the four persisted statuses.

    Unknown labels are treated as ``started`` so an entry is never dropped
    because of its status.
    """
    if isinstance(label, LogStatus):
        return label
    key = (label or "").strip().lower()
    try:
        return LogStatus(key)
    except ValueError:
        return _STATUS_ALIASES.get(key, LogStatus.STARTED)


# Keys stored inside ``input_data`` in the persisted record shape.
_UI_KEYS = ("progress_percent", "tool_icon", "sub_step")


class ExecutionLogEntry(BaseModel):
    """Immutable record of one step attempt."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    session_id: str
    step_name: str
    tool_name: Optional[str] = None
    status: LogStatus
    input_data: Optional[dict[str, Any]] = None
    output_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    progress_percent: Optional[int] = Field(default=None, ge=0, le=100)
    sub_step: Optional[str] = None
    tool_icon: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> LogStatus:
        return normalize_status(value)

    @model_validator(mode="before")
    @classmethod
    def _default_icon(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("tool_icon"):
            tool = data.get("tool_name")
            if tool in TOOL_ICONS:
                data = {**data, "tool_icon": TOOL_ICONS[tool]}
        return data

    def to_record(self) -> dict[str, Any]:
        """Return the persisted row shape (UI hints folded into ``input_data``)."""
        input_data = dict(self.input_data or {})
        for key in _UI_KEYS:
            input_data[key] = getattr(self, key)
        return {
            "session_id": self.session_id,
            "step_name": self.step_name,
            "tool_name": self.tool_name,
            "status": self.status.value,
            "input_data": input_data,
            "output_data": self.output_data,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> "ExecutionLogEntry":
        """Inverse of :meth:`to_record`."""
        data = dict(row)
        input_data = dict(data.get("input_data") or {})
        for key in _UI_KEYS:
            data[key] = input_data.pop(key, None)
        data["input_data"] = input_data or None
        return cls(**data)


class SessionRecord(BaseModel):
    """Persisted state of one workflow run."""

    id: str
    user_id: str
    state: SessionState = SessionState.INITIALIZED
    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal
