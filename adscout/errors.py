"""Exception hierarchy for adscout workflows."""

from __future__ import annotations

from typing import Optional


class AdScoutError(Exception):
    """Base class for all adscout errors."""


class InvalidWorkflowInput(AdScoutError):
    """Raised when workflow input is missing required fields."""


class CollaboratorError(AdScoutError):
    """A remote collaborator returned a non-success response or failed."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.message = message


class StepFailedError(AdScoutError):
    """A pipeline step failed. Carries the step name and underlying cause."""

    def __init__(self, step_name: str, cause: BaseException) -> None:
        super().__init__(f"Step '{step_name}' failed: {describe_error(cause)}")
        self.step_name = step_name
        self.cause = cause


class InfrastructureError(AdScoutError):
    """Session state could not be created or updated."""


class SessionExistsError(InfrastructureError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} already exists")
        self.session_id = session_id


class SessionNotFoundError(InfrastructureError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionClosedError(InfrastructureError):
    def __init__(self, session_id: str, state: Optional[str] = None) -> None:
        suffix = f" ({state})" if state else ""
        super().__init__(f"Session {session_id} is already terminal{suffix}")
        self.session_id = session_id


def describe_error(error: BaseException) -> str:
    """Human readable message for an exception, falling back to its type."""
    message = str(error)
    return message if message else type(error).__name__
