from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from conftest import ScriptedCompletion, text_turn, tool_turn
from jobrunner.approvals.arguments import reconstruct_arguments
from jobrunner.approvals.service import ApprovalWorkflow
from jobrunner.errors import ActionNotFoundError, NotPendingError
from jobrunner.executor.completion import CompletionService
from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus
from jobrunner.storage.interfaces import ActionRecord, ExecutionRecord

T0 = datetime(2026, 10, 16, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def approvals(stores, catalog) -> ApprovalWorkflow:
    return ApprovalWorkflow(action_store=stores.actions, execution_store=stores.executions, catalog=catalog)


@pytest.fixture
def held_draft(stores, registered_job, make_executor):
    """Run an inbox job whose single call is held at a boundary; return (execution_id, action_id)."""

    async def _run(*calls):
        job = registered_job()
        completion = ScriptedCompletion([tool_turn(*calls), text_turn("Drafted.")])
        result = await make_executor(completion).run(job)
        assert result.status == ExecutionStatus.AWAITING_APPROVAL
        pending = [a for a in stores.actions.list_by_execution(result.execution_id) if a.status == ActionStatus.PENDING_APPROVAL]
        return result.execution_id, [a.id for a in pending]

    return _run


def _seed_awaiting(stores, registered_job, action: ActionRecord) -> None:
    registered_job()
    stores.executions.create(ExecutionRecord(id=action.execution_id, job_id="inbox-triage", started_at=T0, status=ExecutionStatus.RUNNING))
    stores.executions.update(action.execution_id, status=ExecutionStatus.AWAITING_APPROVAL, completed_at=T0)
    stores.actions.create(action)


@pytest.mark.asyncio
async def test_approve_replays_the_call_and_completes_the_execution(stores, approvals, held_draft) -> None:
    execution_id, [action_id] = await held_draft(("gmail_draft_reply", {"id": "msg-002", "body": "See you Thursday"}))

    result = await approvals.approve(action_id)

    assert result.success is True
    assert result.new_status == ActionStatus.APPROVED
    payload = json.loads(result.result)
    assert payload["status"] == "pending-approval"
    assert payload["body_preview"] == "See you Thursday"

    action = stores.actions.get(action_id)
    assert action.status == ActionStatus.APPROVED
    assert action.result == result.result
    assert action.boundary_violation == "Boundary: Never send emails without approval"
    assert stores.executions.get(execution_id).status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_veto_records_reason_and_never_calls_the_tool(stores, catalog, approvals, held_draft) -> None:
    execution_id, [action_id] = await held_draft(("gmail_draft_reply", {"id": "msg-002", "body": "Hi"}))

    async def refuse(name, arguments):
        raise AssertionError("veto must not invoke tools")

    catalog.invoke = refuse
    result = await approvals.veto(action_id, "not yet")

    assert result.result == "Vetoed: not yet"
    assert stores.actions.get(action_id).status == ActionStatus.VETOED
    assert stores.executions.get(execution_id).status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_second_decision_is_rejected(approvals, held_draft) -> None:
    _, [action_id] = await held_draft(("gmail_draft_reply", {"id": "msg-002", "body": "Hi"}))
    assert (await approvals.veto(action_id)).result == "Vetoed by user"

    with pytest.raises(NotPendingError) as exc:
        await approvals.veto(action_id, "again")
    assert exc.value.current_status == "vetoed"
    assert str(exc.value) == "Action is not pending approval (current status: vetoed)"

    with pytest.raises(NotPendingError):
        await approvals.approve(action_id)


@pytest.mark.asyncio
async def test_unknown_action(approvals) -> None:
    with pytest.raises(ActionNotFoundError):
        await approvals.approve("nope")
    with pytest.raises(ActionNotFoundError):
        await approvals.veto("nope")


@pytest.mark.asyncio
async def test_execution_waits_for_every_pending_action(stores, approvals, held_draft) -> None:
    execution_id, pending = await held_draft(
        ("gmail_draft_reply", {"id": "msg-002", "body": "One"}),
        ("gmail_draft_reply", {"id": "msg-005", "body": "Two"}),
    )
    assert len(pending) == 2

    await approvals.approve(pending[0])
    assert stores.executions.get(execution_id).status == ExecutionStatus.AWAITING_APPROVAL

    await approvals.veto(pending[1])
    execution = stores.executions.get(execution_id)
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.completed_at is not None
    assert [p.action.id for p in approvals.list_pending()] == []


@pytest.mark.asyncio
async def test_action_approved_while_the_run_is_still_going(stores, registered_job, make_executor, approvals) -> None:
    job = registered_job()
    decided: list[str] = []

    class ApproveMidRun(CompletionService):
        def __init__(self):
            self.turns = 0

        async def converse(self, *, system, tools, messages):
            self.turns += 1
            if self.turns == 1:
                return tool_turn(("gmail_draft_reply", {"id": "msg-002", "body": "See you Thursday"}))
            [held] = approvals.list_pending()
            await approvals.approve(held.action.id)
            decided.append(held.action.id)
            return text_turn("Drafted.")

    result = await make_executor(ApproveMidRun()).run(job)

    assert result.status == ExecutionStatus.COMPLETED
    assert stores.executions.get(result.execution_id).status == ExecutionStatus.COMPLETED
    assert stores.actions.get(decided[0]).status == ActionStatus.APPROVED
    assert approvals.list_pending() == []


@pytest.mark.asyncio
async def test_failed_replay_still_approves(stores, registered_job, approvals) -> None:
    _seed_awaiting(
        stores,
        registered_job,
        ActionRecord(
            id="a1",
            execution_id="e1",
            description="gmail_purge_all()",
            status=ActionStatus.PENDING_APPROVAL,
            created_at=T0,
            tool="gmail_purge_all",
            arguments={},
        ),
    )

    result = await approvals.approve("a1")

    assert result.success is True
    assert result.result == "Approved but execution failed: Unknown function: purge_all in gmail"
    assert stores.actions.get("a1").status == ActionStatus.APPROVED
    assert stores.executions.get("e1").status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_action_without_tool_is_simply_approved(stores, registered_job, approvals) -> None:
    _seed_awaiting(
        stores,
        registered_job,
        ActionRecord(id="a1", execution_id="e1", description="Manual step", status=ActionStatus.PENDING_APPROVAL, created_at=T0),
    )
    assert (await approvals.approve("a1")).result == "Approved"


@pytest.mark.asyncio
async def test_legacy_action_arguments_are_recovered_from_description(stores, registered_job, approvals) -> None:
    _seed_awaiting(
        stores,
        registered_job,
        ActionRecord(
            id="a1",
            execution_id="e1",
            description="Approve PR #141 (Fix token refresh)",
            status=ActionStatus.PENDING_APPROVAL,
            created_at=T0,
            tool="github_approve_pr",
        ),
    )

    result = await approvals.approve("a1")

    assert "PR #141" in json.loads(result.result)["message"]


def test_reconstruct_arguments_forms() -> None:
    assert reconstruct_arguments('gmail_draft_reply({"id": "msg-003", "body": "Ok"})', "gmail_draft_reply") == {
        "id": "msg-003",
        "body": "Ok",
    }
    assert reconstruct_arguments('gmail_flag_email(id: "msg-004", reason: "phishing")', "gmail_flag_email") == {
        "id": "msg-004",
        "reason": "phishing",
    }
    assert reconstruct_arguments("github_approve_pr(pr_number: 139)", "github_approve_pr") == {"pr_number": 139}
    assert reconstruct_arguments("Draft reply to Sarah (msg-002)", "gmail_draft_reply") == {
        "id": "msg-002",
        "body": "Approved reply",
    }
    assert reconstruct_arguments("Draft something", "gmail_draft_reply") == {"id": "msg-001", "body": "Approved reply"}
    assert reconstruct_arguments("Approve the PR", "github_approve_pr") == {"pr_number": 1}
    assert reconstruct_arguments("Archive it", "gmail_archive_email") == {}
