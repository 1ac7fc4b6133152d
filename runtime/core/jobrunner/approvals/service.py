"""Human approval decisions on pending actions.

An action held at a boundary (or by a tool that requires confirmation) waits in
`pending-approval` until an operator approves or vetoes it:
- approve: replay the tool call, record the outcome, mark approved
- veto: record the reason, mark vetoed, never call the tool

After either decision the owning execution is re-evaluated: an execution in
`awaiting-approval` with no pending actions left becomes `completed`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from jobrunner.approvals.arguments import reconstruct_arguments
from jobrunner.errors import ConflictError, NotPendingError, ToolInvocationError
from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus, check_action_transition, execution_transition
from jobrunner.storage.interfaces import ActionRecord, ActionStore, ExecutionStore, PendingApproval
from jobrunner.tools.catalog import ToolCatalog
from jobrunner.utils import json_dumps, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalResult:
    success: bool
    action_id: str
    new_status: ActionStatus | None = None
    result: str | None = None
    error: str | None = None
    code: str | None = None


class ApprovalWorkflow:
    def __init__(
        self,
        *,
        action_store: ActionStore,
        execution_store: ExecutionStore,
        catalog: ToolCatalog,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._actions = action_store
        self._executions = execution_store
        self._catalog = catalog
        self._clock = clock
        # Approvals replaying a tool call right now; a second decision must not race them.
        self._in_flight: set[str] = set()

    def list_pending(self) -> list[PendingApproval]:
        return self._actions.list_pending_with_context()

    def _require_pending(self, action_id: str, new_status: ActionStatus) -> ActionRecord:
        action = self._actions.get(action_id)
        if action.status != ActionStatus.PENDING_APPROVAL:
            raise NotPendingError(action_id, action.status.value)
        check_action_transition(action.status, new_status)
        return action

    async def approve(self, action_id: str) -> ApprovalResult:
        action = self._require_pending(action_id, ActionStatus.APPROVED)
        if action_id in self._in_flight:
            raise ConflictError("Approval already in progress", details={"action_id": action_id})
        self._in_flight.add(action_id)
        try:
            result_text = await self._execute(action)
        finally:
            self._in_flight.discard(action_id)

        self._actions.update(action_id, status=ActionStatus.APPROVED, result=result_text)
        logger.info("action_approved", extra={"event": "action_approved", "action_id": action_id, "execution_id": action.execution_id, "tool": action.tool})
        self._reevaluate(action.execution_id)
        return ApprovalResult(success=True, action_id=action_id, new_status=ActionStatus.APPROVED, result=result_text)

    async def veto(self, action_id: str, reason: str | None = None) -> ApprovalResult:
        action = self._require_pending(action_id, ActionStatus.VETOED)
        if action_id in self._in_flight:
            raise ConflictError("Approval already in progress", details={"action_id": action_id})
        result_text = f"Vetoed: {reason}" if reason else "Vetoed by user"

        self._actions.update(action_id, status=ActionStatus.VETOED, result=result_text)
        logger.info("action_vetoed", extra={"event": "action_vetoed", "action_id": action_id, "execution_id": action.execution_id, "tool": action.tool})
        self._reevaluate(action.execution_id)
        return ApprovalResult(success=True, action_id=action_id, new_status=ActionStatus.VETOED, result=result_text)

    async def _execute(self, action: ActionRecord) -> str:
        if not action.tool:
            return "Approved"

        arguments = action.arguments if action.arguments is not None else reconstruct_arguments(action.description, action.tool)
        try:
            outcome = await self._catalog.invoke(action.tool, arguments)
        except ToolInvocationError as e:
            # The decision stands even if the replay fails.
            logger.warning(
                "approved_action_failed",
                extra={"event": "approved_action_failed", "action_id": action.id, "tool": action.tool, "code": e.code},
            )
            return f"Approved but execution failed: {e}"
        if outcome.data is None:
            return "Approved and executed"
        return json_dumps(outcome.data)

    def _reevaluate(self, execution_id: str) -> None:
        execution = self._executions.get(execution_id)
        if execution.status != ExecutionStatus.AWAITING_APPROVAL:
            return
        siblings = self._actions.list_by_execution(execution_id)
        if any(a.status == ActionStatus.PENDING_APPROVAL for a in siblings):
            return
        self._executions.update(
            execution_id,
            **execution_transition(execution.status, ExecutionStatus.COMPLETED, now=self._clock()),
        )
        logger.info("execution_completed_after_review", extra={"event": "execution_completed_after_review", "execution_id": execution_id, "job_id": execution.job_id})
