"""Job execution engine.

One call to `Executor.run` is one execution of a job:
- Creates the execution record (status running)
- Drives a tool-use conversation with the completion service, or replays the
  simulation script when no completion service is configured
- Checks every proposed tool call against the job's boundaries before it runs
- Records one action per tool call, in the order the calls were made
- Finalizes the execution as completed, awaiting-approval or failed

`run` never raises for run-level problems (model errors, tool errors, turn or
time limits). They end up in the execution's `error` field instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from jobrunner.config.settings import ExecutorConfig
from jobrunner.errors import RunExhaustedError, ToolInvocationError
from jobrunner.executor.completion import CompletionService
from jobrunner.executor.policy import (
    DEFAULT_BOUNDARY_RULES,
    BoundaryRule,
    build_seed_message,
    build_system_prompt,
    check_boundary_violation,
    describe_call,
)
from jobrunner.executor.simulation import scripts_for, summarize
from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus, execution_transition
from jobrunner.registry.definition import JobDefinition
from jobrunner.storage.interfaces import ActionRecord, ActionStore, ExecutionRecord, ExecutionStore, JobStore
from jobrunner.tools.catalog import ToolCatalog
from jobrunner.utils import json_dumps, new_id, utcnow

logger = logging.getLogger(__name__)

TOOL_REQUIRES_APPROVAL = "Tool requires human approval"


@dataclass(frozen=True)
class ExecutionResult:
    execution_id: str
    status: ExecutionStatus
    summary: str | None
    error: str | None
    action_count: int
    pending_approval_count: int


@dataclass
class _RunTally:
    action_count: int = 0
    pending_count: int = 0


@dataclass(frozen=True)
class _CallOutcome:
    content: str
    is_error: bool = False


def blocked_message(violation: str) -> str:
    return f"Action blocked: {violation}. This action requires human approval before execution."


class Executor:
    def __init__(
        self,
        *,
        catalog: ToolCatalog,
        job_store: JobStore,
        execution_store: ExecutionStore,
        action_store: ActionStore,
        config: ExecutorConfig,
        completion: CompletionService | None = None,
        boundary_rules: tuple[BoundaryRule, ...] = DEFAULT_BOUNDARY_RULES,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._catalog = catalog
        self._jobs = job_store
        self._executions = execution_store
        self._actions = action_store
        self._config = config
        self._completion = completion
        self._rules = boundary_rules
        self._clock = clock

    @property
    def simulation_mode(self) -> bool:
        return self._completion is None

    async def run(self, job: JobDefinition) -> ExecutionResult:
        execution_id = new_id()
        self._executions.create(
            ExecutionRecord(id=execution_id, job_id=job.id, started_at=self._clock(), status=ExecutionStatus.RUNNING)
        )
        # Mode is fixed for the whole run.
        completion = self._completion
        tally = _RunTally()
        logger.info(
            "execution_started",
            extra={"event": "execution_started", "job_id": job.id, "execution_id": execution_id, "code": "simulation" if completion is None else "live"},
        )

        try:
            if completion is None:
                work = self._simulate(job, execution_id, tally)
            else:
                work = self._converse(completion, job, execution_id, tally)
            summary = await asyncio.wait_for(work, timeout=self._config.run_timeout_seconds)
            return self._finish(job, execution_id, tally, summary)
        except asyncio.TimeoutError:
            return self._fail(job, execution_id, tally, f"Run exceeded timeout of {self._config.run_timeout_seconds:g}s")
        except asyncio.CancelledError:
            self._fail(job, execution_id, tally, "Run was cancelled")
            raise
        except Exception as e:
            logger.exception("execution_failed", extra={"event": "execution_failed", "job_id": job.id, "execution_id": execution_id})
            return self._fail(job, execution_id, tally, str(e) or type(e).__name__)

    async def _converse(self, completion: CompletionService, job: JobDefinition, execution_id: str, tally: _RunTally) -> str:
        system = build_system_prompt(job)
        tools = self._catalog.tools_for_categories(job.tools)
        messages: list[dict[str, Any]] = [{"role": "user", "content": build_seed_message(job)}]

        for _ in range(self._config.max_turns):
            turn = await completion.converse(system=system, tools=tools, messages=messages)
            messages.append(turn.to_message())

            if turn.is_terminal:
                return turn.text or f"Processed {tally.action_count} actions."

            results: list[dict[str, Any]] = []
            for call in turn.tool_calls:
                outcome = await self.process_tool_call(job, execution_id, call.name, call.input, tally)
                result: dict[str, Any] = {"type": "tool_result", "tool_use_id": call.id, "content": outcome.content}
                if outcome.is_error:
                    result["is_error"] = True
                results.append(result)
            messages.append({"role": "user", "content": results})

        raise RunExhaustedError(self._config.max_turns)

    async def _simulate(self, job: JobDefinition, execution_id: str, tally: _RunTally) -> str:
        scripts = scripts_for(job.tools)
        for script in scripts:
            for step in script.steps:
                await self.process_tool_call(job, execution_id, step.tool, step.arguments, tally, description=step.description)
        return summarize(scripts, action_count=tally.action_count, pending_count=tally.pending_count)

    async def process_tool_call(
        self,
        job: JobDefinition,
        execution_id: str,
        tool: str,
        arguments: dict[str, Any],
        tally: _RunTally,
        *,
        description: str | None = None,
    ) -> _CallOutcome:
        """Gate, invoke and record a single tool call."""
        description = description or describe_call(tool, arguments)
        log_extra = {"job_id": job.id, "execution_id": execution_id, "tool": tool}

        violation = check_boundary_violation(tool, job.boundaries, self._rules)
        if violation is not None:
            self._record(execution_id, tally, description, tool, ActionStatus.PENDING_APPROVAL, arguments, boundary_violation=violation)
            logger.info("action_blocked", extra={"event": "action_blocked", **log_extra})
            return _CallOutcome(blocked_message(violation))

        try:
            result = await self._catalog.invoke(tool, arguments)
        except ToolInvocationError as e:
            payload = json_dumps({"error": str(e), "code": e.code})
            self._record(execution_id, tally, description, tool, ActionStatus.EXECUTED, arguments, result=payload)
            logger.warning("tool_call_failed", extra={"event": "tool_call_failed", "code": e.code, **log_extra})
            return _CallOutcome(payload, is_error=True)

        payload = json_dumps(result.data)
        if result.requires_approval:
            self._record(
                execution_id,
                tally,
                description,
                tool,
                ActionStatus.PENDING_APPROVAL,
                arguments,
                boundary_violation=TOOL_REQUIRES_APPROVAL,
                result=payload,
            )
            logger.info("action_held_for_approval", extra={"event": "action_held_for_approval", **log_extra})
        else:
            self._record(execution_id, tally, description, tool, ActionStatus.EXECUTED, arguments, result=payload)
        return _CallOutcome(payload)

    def _record(
        self,
        execution_id: str,
        tally: _RunTally,
        description: str,
        tool: str,
        status: ActionStatus,
        arguments: dict[str, Any],
        *,
        boundary_violation: str | None = None,
        result: str | None = None,
    ) -> None:
        self._actions.create(
            ActionRecord(
                id=new_id(),
                execution_id=execution_id,
                description=description,
                status=status,
                created_at=self._clock(),
                tool=tool,
                boundary_violation=boundary_violation,
                result=result,
                arguments=dict(arguments),
            )
        )
        tally.action_count += 1
        if status == ActionStatus.PENDING_APPROVAL:
            tally.pending_count += 1

    def _finish(self, job: JobDefinition, execution_id: str, tally: _RunTally, summary: str) -> ExecutionResult:
        now = self._clock()
        # Held actions may already have been decided while the run was still going.
        still_pending = any(a.status == ActionStatus.PENDING_APPROVAL for a in self._actions.list_by_execution(execution_id))
        status = ExecutionStatus.AWAITING_APPROVAL if still_pending else ExecutionStatus.COMPLETED
        # Status is written last so nothing after it can fail the run.
        self._jobs.set_last_run(job.id, now)
        self._executions.update(execution_id, **execution_transition(ExecutionStatus.RUNNING, status, now=now, summary=summary))
        logger.info(
            "execution_finished",
            extra={"event": "execution_finished", "job_id": job.id, "execution_id": execution_id, "code": status.value},
        )
        return ExecutionResult(
            execution_id=execution_id,
            status=status,
            summary=summary,
            error=None,
            action_count=tally.action_count,
            pending_approval_count=tally.pending_count,
        )

    def _fail(self, job: JobDefinition, execution_id: str, tally: _RunTally, error: str) -> ExecutionResult:
        now = self._clock()
        self._executions.update(
            execution_id, **execution_transition(ExecutionStatus.RUNNING, ExecutionStatus.FAILED, now=now, error=error)
        )
        logger.warning("execution_marked_failed", extra={"event": "execution_marked_failed", "job_id": job.id, "execution_id": execution_id})
        return ExecutionResult(
            execution_id=execution_id,
            status=ExecutionStatus.FAILED,
            summary=None,
            error=error,
            action_count=tally.action_count,
            pending_approval_count=tally.pending_count,
        )
