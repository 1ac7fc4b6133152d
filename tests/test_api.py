from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import INBOX_JOB_MD, PR_JOB_MD
from jobrunner.api.main import create_app
from jobrunner.runtime import JobRunner


@pytest.fixture
def client(runtime_config):
    jobs_dir = runtime_config.jobs.jobs_dir
    (jobs_dir / "inbox-triage.job.md").write_text(INBOX_JOB_MD, encoding="utf-8")
    (jobs_dir / "pr-review.job.md").write_text(PR_JOB_MD, encoding="utf-8")
    runner = JobRunner.build(runtime_config, completion_factory=lambda config: None)
    with TestClient(create_app(runner)) as c:
        yield c


def test_health(client) -> None:
    body = client.get("/health").json()
    assert body == {"status": "ok", "mode": "simulation", "scheduled_jobs": ["inbox-triage", "pr-review"]}


def test_list_and_get_jobs(client) -> None:
    jobs = client.get("/jobs").json()["jobs"]
    assert [j["id"] for j in jobs] == ["inbox-triage", "pr-review"]
    assert jobs[0]["title"] == "Morning Inbox Triage"
    assert jobs[0]["scheduled"] is True
    assert jobs[0]["is_running"] is False

    detail = client.get("/jobs/pr-review").json()
    assert detail["job"]["boundaries"] == ["Never approve pull requests without approval"]
    assert detail["executions"] == []

    assert client.get("/jobs/nope").status_code == 404


def test_run_review_and_approve(client) -> None:
    run = client.post("/jobs/pr-review/run")
    assert run.status_code == 200
    execution_id = run.json()["execution_id"]
    assert run.json()["status"] == "awaiting-approval"

    detail = client.get(f"/executions/{execution_id}").json()
    assert detail["execution"]["job_title"] == "PR Review"
    assert len(detail["actions"]) == 5

    [pending] = client.get("/approvals").json()["approvals"]
    assert pending["tool"] == "github_approve_pr"
    assert pending["execution_status"] == "awaiting-approval"

    approved = client.post(f"/actions/{pending['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["new_status"] == "approved"

    again = client.post(f"/actions/{pending['id']}/approve")
    assert again.status_code == 409
    assert again.json()["code"] == "NOT_PENDING"

    timeline = client.get("/timeline").json()["executions"]
    assert timeline[0]["id"] == execution_id
    assert timeline[0]["status"] == "completed"


def test_veto_with_reason(client) -> None:
    client.post("/jobs/inbox-triage/run")
    [pending] = client.get("/approvals").json()["approvals"]

    vetoed = client.post(f"/actions/{pending['id']}/veto", json={"reason": "not yet"})

    assert vetoed.status_code == 200
    assert vetoed.json()["result"] == "Vetoed: not yet"
    assert client.get("/approvals").json()["approvals"] == []


def test_unknown_resources(client) -> None:
    run = client.post("/jobs/nope/run")
    assert run.status_code == 404
    assert run.json() == {"success": False, "error": "Job not found: nope", "code": "JOB_NOT_FOUND"}

    assert client.post("/actions/nope/approve").status_code == 404
    assert client.post("/actions/nope/veto").status_code == 404
    assert client.get("/executions/nope").status_code == 404


def test_toggle_and_reload(client) -> None:
    toggled = client.post("/jobs/inbox-triage/toggle").json()["job"]
    assert toggled["enabled"] is False
    assert toggled["scheduled"] is False

    reloaded = client.post("/jobs/reload").json()
    assert reloaded == {"reloaded": 2, "scheduled_jobs": ["pr-review"]}


def test_scheduler_changes_run_on_the_event_loop(client, monkeypatch) -> None:
    scheduler = client.app.state.runner.scheduler
    original = scheduler.reconcile
    on_loop: list[bool] = []

    def recording(definitions):
        try:
            asyncio.get_running_loop()
            on_loop.append(True)
        except RuntimeError:
            on_loop.append(False)
        return original(definitions)

    monkeypatch.setattr(scheduler, "reconcile", recording)

    assert client.post("/jobs/reload").status_code == 200
    assert client.post("/jobs/pr-review/toggle").status_code == 200
    assert on_loop == [True, True]
