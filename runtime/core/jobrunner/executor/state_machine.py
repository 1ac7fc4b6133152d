"""Execution and action lifecycle state machines.

Execution lifecycle:
running -> completed | failed | awaiting-approval
awaiting-approval -> completed

Action lifecycle:
executed (terminal at creation)
pending-approval -> approved | vetoed

Notes:
- `completed_at` is stamped whenever an execution leaves `running`, and again
  when an awaiting execution is completed by the approval workflow.
- Stores do not enforce transitions; services call into this module before
  writing.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from jobrunner.errors import InvalidTransitionError


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    AWAITING_APPROVAL = "awaiting-approval"


class ActionStatus(str, Enum):
    EXECUTED = "executed"
    PENDING_APPROVAL = "pending-approval"
    APPROVED = "approved"
    VETOED = "vetoed"


_EXECUTION_ALLOWED: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.RUNNING: {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.AWAITING_APPROVAL},
    ExecutionStatus.AWAITING_APPROVAL: {ExecutionStatus.COMPLETED},
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
}

_ACTION_ALLOWED: dict[ActionStatus, set[ActionStatus]] = {
    ActionStatus.PENDING_APPROVAL: {ActionStatus.APPROVED, ActionStatus.VETOED},
    ActionStatus.EXECUTED: set(),
    ActionStatus.APPROVED: set(),
    ActionStatus.VETOED: set(),
}


def is_terminal(status: ExecutionStatus) -> bool:
    return not _EXECUTION_ALLOWED[ExecutionStatus(status)]


def check_execution_transition(current: ExecutionStatus | str, new: ExecutionStatus | str) -> None:
    cur, nxt = ExecutionStatus(current), ExecutionStatus(new)
    if nxt not in _EXECUTION_ALLOWED[cur]:
        raise InvalidTransitionError("execution", cur.value, nxt.value)


def check_action_transition(current: ActionStatus | str, new: ActionStatus | str) -> None:
    cur, nxt = ActionStatus(current), ActionStatus(new)
    if nxt not in _ACTION_ALLOWED[cur]:
        raise InvalidTransitionError("action", cur.value, nxt.value)


def execution_transition(
    current: ExecutionStatus | str,
    new: ExecutionStatus | str,
    *,
    now: datetime,
    summary: str | None = None,
    error: str | None = None,
) -> dict[str, Any]:
    """Validate a transition and return the partial update to persist."""
    check_execution_transition(current, new)
    update: dict[str, Any] = {"status": ExecutionStatus(new), "completed_at": now}
    if summary is not None:
        update["summary"] = summary
    if error is not None:
        update["error"] = error
    return update
