"""Core runtime error types.

The runtime refuses to guess: unknown jobs, actions and tools are rejected with
a typed error instead of being silently ignored. These exception types are
mapped to HTTP responses in the API layer and to result objects in
`jobrunner.runtime`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class JobRunnerError(Exception):
    """Base class for runtime errors."""


class ConfigurationError(JobRunnerError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class JobDefinitionError(JobRunnerError):
    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(f"{self.path.name}: {message}")


class InvalidScheduleError(JobRunnerError):
    def __init__(self, job_id: str, schedule: str, reason: str):
        self.job_id = job_id
        self.schedule = schedule
        self.reason = reason
        super().__init__(f"Invalid schedule for job {job_id} ({schedule!r}): {reason}")


class NotFoundError(JobRunnerError):
    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class JobNotFoundError(NotFoundError):
    code = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__("Job", job_id)


class DefinitionNotFoundError(NotFoundError):
    code = "DEFINITION_NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__("Job definition", job_id)


class ExecutionNotFoundError(NotFoundError):
    code = "EXECUTION_NOT_FOUND"

    def __init__(self, execution_id: str):
        super().__init__("Execution", execution_id)


class ActionNotFoundError(NotFoundError):
    code = "ACTION_NOT_FOUND"

    def __init__(self, action_id: str):
        super().__init__("Action", action_id)


class ConflictError(JobRunnerError):
    code = "CONFLICT"

    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class AlreadyRunningError(ConflictError):
    code = "ALREADY_RUNNING"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Job is already running", details={"job_id": job_id})


class NotPendingError(ConflictError):
    code = "NOT_PENDING"

    def __init__(self, action_id: str, current_status: str):
        self.action_id = action_id
        self.current_status = current_status
        super().__init__(
            f"Action is not pending approval (current status: {current_status})",
            details={"action_id": action_id, "current_status": current_status},
        )


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"

    def __init__(self, kind: str, current: str, new: str):
        self.kind = kind
        self.current = current
        self.new = new
        super().__init__(f"Invalid {kind} status transition: {current} -> {new}")


class ToolInvocationError(JobRunnerError):
    def __init__(self, message: str, code: str = "TOOL_EXECUTION_FAILED", details: Any | None = None):
        self.code = code
        self.details = details
        super().__init__(message)


class CompletionServiceError(JobRunnerError):
    """The completion backend failed or returned something we cannot use."""


class RunExhaustedError(JobRunnerError):
    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Run did not finish within {max_turns} turns")
