from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import INBOX_JOB_MD, PR_JOB_MD
from jobrunner.errors import JobDefinitionError
from jobrunner.registry.loader import (
    job_id_for_path,
    load_job_definitions,
    load_job_file,
    parse_job_markdown,
    parse_job_yaml,
)
from jobrunner.registry.registry import JobRegistry


def test_markdown_document_is_parsed() -> None:
    text = """# Morning Inbox Triage

Intro text before any section is ignored.

## Schedule
0 8 * * 1-5

## Goal
Clear the inbox
before the day starts.

## Policies
- Archive newsletters
* Star messages from the team
1. Flag anything suspicious

## Boundaries
- Never send emails without approval
- Never delete emails

## Tools
- Gmail

## Notes
- not a recognised section
"""
    job = parse_job_markdown(text, job_id="inbox-triage")

    assert job.id == "inbox-triage"
    assert job.title == "Morning Inbox Triage"
    assert job.schedule == "0 8 * * 1-5"
    assert job.goal == "Clear the inbox\nbefore the day starts."
    assert job.policies == ("Archive newsletters", "Star messages from the team", "Flag anything suspicious")
    assert job.boundaries == ("Never send emails without approval", "Never delete emails")
    assert job.tools == ("gmail",)
    assert job.enabled is True


def test_title_defaults_to_id() -> None:
    job = parse_job_markdown("## Schedule\n*/30 * * * *\n", job_id="poller")
    assert job.title == "poller"
    assert job.policies == job.boundaries == job.tools == ()


@pytest.mark.parametrize("value", ["false", "Disabled", "FALSE"])
def test_markdown_document_can_be_disabled(value) -> None:
    job = parse_job_markdown(f"# T\n\n## Schedule\n0 9 * * *\n\n## Enabled\n{value}\n", job_id="t")
    assert job.enabled is False


def test_markdown_document_without_schedule_is_rejected() -> None:
    with pytest.raises(JobDefinitionError, match="missing Schedule section"):
        parse_job_markdown("# No schedule\n\n## Goal\nSomething\n", job_id="broken")


def test_yaml_document_is_parsed() -> None:
    text = """
title: Slack Catchup
schedule: "30 8 * * 1-5"
goal: Catch up on Slack.
boundaries:
  - Never post messages or replies without approval
tools: [Slack]
enabled: false
"""
    job = parse_job_yaml(text, job_id="slack-catchup")

    assert job.title == "Slack Catchup"
    assert job.schedule == "30 8 * * 1-5"
    assert job.boundaries == ("Never post messages or replies without approval",)
    assert job.tools == ("slack",)
    assert job.enabled is False


@pytest.mark.parametrize(
    "text, message",
    [
        ("- just\n- a list\n", "expected mapping"),
        ("title: x\n", "missing schedule"),
        ("schedule: '0 9 * * *'\ntools: gmail\n", "tools must be a list"),
        ("schedule: [unclosed\n", "failed to parse YAML"),
    ],
)
def test_invalid_yaml_documents_are_rejected(text, message) -> None:
    with pytest.raises(JobDefinitionError, match=message):
        parse_job_yaml(text, job_id="bad")


def test_job_id_comes_from_file_name(tmp_path: Path) -> None:
    path = tmp_path / "pr-review.job.md"
    path.write_text(PR_JOB_MD, encoding="utf-8")

    job = load_job_file(path)

    assert job_id_for_path(path) == "pr-review"
    assert job.id == "pr-review"
    assert job.file_path == path
    with pytest.raises(JobDefinitionError):
        job_id_for_path(tmp_path / "README.md")


def test_rejected_documents_are_skipped(tmp_path: Path) -> None:
    (tmp_path / "inbox-triage.job.md").write_text(INBOX_JOB_MD, encoding="utf-8")
    (tmp_path / "broken.job.md").write_text("# Broken\n", encoding="utf-8")
    (tmp_path / "notes.md").write_text("# Not a job\n", encoding="utf-8")
    nested = tmp_path / "archive"
    nested.mkdir()
    (nested / "old.job.md").write_text(PR_JOB_MD, encoding="utf-8")

    jobs = load_job_definitions(tmp_path)

    assert [j.id for j in jobs] == ["inbox-triage"]


def test_missing_jobs_directory_loads_nothing(tmp_path: Path) -> None:
    assert load_job_definitions(tmp_path / "absent") == []


def test_registry_detects_added_and_removed_documents(tmp_path: Path) -> None:
    (tmp_path / "inbox-triage.job.md").write_text(INBOX_JOB_MD, encoding="utf-8")
    registry = JobRegistry(tmp_path)
    assert [j.id for j in registry.load()] == ["inbox-triage"]

    assert registry.reload_if_changed() is None

    (tmp_path / "pr-review.job.md").write_text(PR_JOB_MD, encoding="utf-8")
    assert [j.id for j in registry.reload_if_changed()] == ["inbox-triage", "pr-review"]

    os.remove(tmp_path / "inbox-triage.job.md")
    assert [j.id for j in registry.reload_if_changed()] == ["pr-review"]
    assert registry.has_changed() is False
