from __future__ import annotations

from pathlib import Path

import pytest

from conftest import INBOX_JOB_MD, PR_JOB_MD
from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus
from jobrunner.runtime import JobRunner


def _write_jobs(jobs_dir: Path, **docs: str) -> None:
    for job_id, text in docs.items():
        (jobs_dir / f"{job_id}.job.md").write_text(text, encoding="utf-8")


@pytest.fixture
def runner(runtime_config):
    _write_jobs(
        runtime_config.jobs.jobs_dir,
        **{
            "inbox-triage": INBOX_JOB_MD,
            "pr-review": PR_JOB_MD,
            "broken-schedule": "# Broken\n\n## Schedule\n0 9 * *\n\n## Tools\n- gmail\n",
        },
    )
    r = JobRunner.build(runtime_config, completion_factory=lambda config: None)
    r.start()
    yield r
    r.shutdown()


def test_start_loads_documents_into_the_ledger(runner) -> None:
    assert sorted(j.job.id for j in runner.list_jobs()) == ["broken-schedule", "inbox-triage", "pr-review"]
    assert runner.list_scheduled_ids() == ["inbox-triage", "pr-review"]
    assert runner.executor.simulation_mode
    view = runner.get_job("broken-schedule")
    assert view.scheduled is False
    assert view.job.next_run is None
    assert runner.get_job("inbox-triage").job.next_run is not None


@pytest.mark.asyncio
async def test_trigger_unknown_job(runner) -> None:
    result = await runner.trigger_job("nope")
    assert result.success is False
    assert result.code == "JOB_NOT_FOUND"
    assert result.error == "Job not found: nope"


@pytest.mark.asyncio
async def test_manual_run_of_job_without_timer(runner) -> None:
    result = await runner.trigger_job("broken-schedule")

    assert result.success
    assert result.status == ExecutionStatus.AWAITING_APPROVAL
    view = runner.get_execution(result.execution_id)
    assert view.execution.job_title == "Broken"
    assert runner.get_job("broken-schedule").job.last_run is not None


@pytest.mark.asyncio
async def test_review_flow_end_to_end(runner) -> None:
    run = await runner.trigger_job("pr-review")
    [pending] = runner.list_pending_approvals()
    assert pending.job_id == "pr-review"
    assert pending.action.tool == "github_approve_pr"
    assert pending.execution_status == ExecutionStatus.AWAITING_APPROVAL

    approved = await runner.approve_action(pending.action.id)
    assert approved.success

    again = await runner.veto_action(pending.action.id, "too late")
    assert again.success is False
    assert again.code == "NOT_PENDING"

    view = runner.get_execution(run.execution_id)
    assert view.execution.status == ExecutionStatus.COMPLETED
    assert [a.status for a in view.actions].count(ActionStatus.APPROVED) == 1
    assert runner.timeline()[0].id == run.execution_id


@pytest.mark.asyncio
async def test_decisions_on_unknown_actions(runner) -> None:
    assert (await runner.approve_action("nope")).code == "ACTION_NOT_FOUND"
    assert (await runner.veto_action("nope")).code == "ACTION_NOT_FOUND"


def test_toggle_survives_a_reload(runner) -> None:
    assert runner.toggle_job("pr-review").enabled is False
    assert runner.list_scheduled_ids() == ["inbox-triage"]

    runner.reload_jobs()
    assert runner.list_scheduled_ids() == ["inbox-triage"]
    assert runner.get_job("pr-review").job.enabled is False

    assert runner.toggle_job("pr-review").enabled is True
    assert runner.list_scheduled_ids() == ["inbox-triage", "pr-review"]


def test_job_source_changes_are_picked_up(runner, runtime_config) -> None:
    jobs_dir = runtime_config.jobs.jobs_dir
    assert runner.reload_if_changed() is False

    _write_jobs(jobs_dir, **{"inbox-copy": INBOX_JOB_MD.replace("0 8 * * 1-5", "*/30 * * * *")})
    (jobs_dir / "pr-review.job.md").unlink()

    assert runner.reload_if_changed() is True
    assert runner.list_scheduled_ids() == ["inbox-copy", "inbox-triage"]
    # Removed documents keep their history in the ledger.
    assert runner.get_job("pr-review").scheduled is False
