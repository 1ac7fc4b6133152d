"""DB-agnostic storage interfaces.

The runtime keeps its durable state in the ledger only. These interfaces define
the persistence boundary for:
- Job records (definition fields plus enabled flag and run timestamps)
- Execution records (one per run)
- Action records (one per tool call decision, in creation order)

Concrete drivers live in `jobrunner.storage` (SQLite by default).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus
from jobrunner.registry.definition import JobDefinition


@dataclass(frozen=True)
class JobRecord:
    id: str
    title: str
    schedule: str
    goal: str
    policies: tuple[str, ...]
    boundaries: tuple[str, ...]
    tools: tuple[str, ...]
    file_path: str | None
    enabled: bool
    last_run: datetime | None = None
    next_run: datetime | None = None


@dataclass(frozen=True)
class ExecutionRecord:
    id: str
    job_id: str
    started_at: datetime
    status: ExecutionStatus
    completed_at: datetime | None = None
    summary: str | None = None
    error: str | None = None
    job_title: str | None = None


@dataclass(frozen=True)
class ActionRecord:
    id: str
    execution_id: str
    description: str
    status: ActionStatus
    created_at: datetime
    tool: str | None = None
    boundary_violation: str | None = None
    result: str | None = None
    arguments: dict[str, Any] | None = None


@dataclass(frozen=True)
class PendingApproval:
    action: ActionRecord
    job_id: str
    job_title: str
    execution_status: ExecutionStatus


class JobStore(ABC):
    @abstractmethod
    def get_all(self) -> list[JobRecord]:
        """List every job the ledger knows about, ordered by title."""

    @abstractmethod
    def get(self, job_id: str) -> JobRecord:
        """Fetch a job by id. Must raise JobNotFoundError if not found."""

    @abstractmethod
    def find(self, job_id: str) -> JobRecord | None:
        """Fetch a job by id, or None."""

    @abstractmethod
    def upsert(self, job: JobDefinition) -> JobRecord:
        """Insert a job or overwrite its definition fields. Enabled flag and run timestamps survive updates."""

    @abstractmethod
    def set_enabled(self, job_id: str, enabled: bool) -> JobRecord:
        """Persist the enabled flag and return the updated record."""

    @abstractmethod
    def set_next_run(self, job_id: str, next_run: datetime | None) -> None:
        """Persist the advisory next-run estimate."""

    @abstractmethod
    def set_last_run(self, job_id: str, last_run: datetime) -> None:
        """Persist the time the last run finished."""


class ExecutionStore(ABC):
    @abstractmethod
    def create(self, execution: ExecutionRecord) -> None:
        """Insert a new execution. Must fail if the id already exists."""

    @abstractmethod
    def get(self, execution_id: str) -> ExecutionRecord:
        """Fetch an execution by id. Must raise ExecutionNotFoundError if not found."""

    @abstractmethod
    def update(
        self,
        execution_id: str,
        *,
        status: ExecutionStatus | None = None,
        completed_at: datetime | None = None,
        summary: str | None = None,
        error: str | None = None,
    ) -> None:
        """Update only the supplied fields."""

    @abstractmethod
    def list_by_job(self, job_id: str, limit: int = 20) -> list[ExecutionRecord]:
        """Most recent executions for a job, newest first."""

    @abstractmethod
    def list_recent(self, limit: int = 50, offset: int = 0) -> list[ExecutionRecord]:
        """Timeline across all jobs, newest first, with job titles attached."""


class ActionStore(ABC):
    @abstractmethod
    def create(self, action: ActionRecord) -> None:
        """Append an action. Must fail if the id already exists."""

    @abstractmethod
    def get(self, action_id: str) -> ActionRecord:
        """Fetch an action by id. Must raise ActionNotFoundError if not found."""

    @abstractmethod
    def update(
        self,
        action_id: str,
        *,
        status: ActionStatus | None = None,
        result: str | None = None,
        boundary_violation: str | None = None,
    ) -> None:
        """Update only the supplied fields."""

    @abstractmethod
    def list_by_execution(self, execution_id: str) -> list[ActionRecord]:
        """Actions of one execution in creation order."""

    @abstractmethod
    def list_pending_with_context(self) -> list[PendingApproval]:
        """Every pending-approval action joined with its job and execution."""
