from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

from jobrunner.config.settings import (
    ExecutorConfig,
    JobsConfig,
    RuntimeConfig,
    SchedulerConfig,
    ServiceConfig,
    StorageConfig,
)
from jobrunner.executor.completion import CompletionService, CompletionTurn, TextBlock, ToolCall
from jobrunner.executor.engine import Executor
from jobrunner.registry.definition import JobDefinition
from jobrunner.storage.sqlite import SQLiteStores
from jobrunner.tools.catalog import ToolCatalog, ToolSpec, default_catalog


class ScriptedCompletion(CompletionService):
    """Replays a fixed list of turns and records what it was sent."""

    def __init__(self, turns: Sequence[CompletionTurn | Exception]):
        self._turns = list(turns)
        self.calls: list[dict[str, Any]] = []

    async def converse(self, *, system: str, tools: Sequence[ToolSpec], messages: list[dict[str, Any]]) -> CompletionTurn:
        self.calls.append({"system": system, "tools": [t.name for t in tools], "messages": list(messages)})
        if not self._turns:
            raise AssertionError("completion called more times than scripted")
        nxt = self._turns.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class SlowCompletion(CompletionService):
    async def converse(self, *, system: str, tools: Sequence[ToolSpec], messages: list[dict[str, Any]]) -> CompletionTurn:
        await asyncio.sleep(10)
        return text_turn("too late")


class LoopingCompletion(CompletionService):
    """Always asks for another tool call."""

    async def converse(self, *, system: str, tools: Sequence[ToolSpec], messages: list[dict[str, Any]]) -> CompletionTurn:
        return tool_turn(("gmail_list_emails", {}))


def text_turn(text: str) -> CompletionTurn:
    return CompletionTurn(blocks=(TextBlock(text=text),), stop_reason="end_turn")


def tool_turn(*calls: tuple[str, dict[str, Any]], text: str = "") -> CompletionTurn:
    blocks: list[Any] = [TextBlock(text=text)] if text else []
    blocks.extend(ToolCall(id=f"toolu_{i}", name=name, input=args) for i, (name, args) in enumerate(calls))
    return CompletionTurn(blocks=tuple(blocks), stop_reason="tool_use")


@pytest.fixture
def stores(tmp_path: Path) -> SQLiteStores:
    return SQLiteStores(tmp_path / "state" / "ledger.sqlite")


@pytest.fixture
def catalog() -> ToolCatalog:
    return default_catalog()


@pytest.fixture
def executor_config() -> ExecutorConfig:
    return ExecutorConfig(
        model="test-model",
        max_tokens=1024,
        max_turns=5,
        run_timeout_seconds=5.0,
        api_key_env="JOBRUNNER_TEST_API_KEY_UNSET",
    )


@pytest.fixture
def make_job() -> Callable[..., JobDefinition]:
    def _make(**overrides: Any) -> JobDefinition:
        fields: dict[str, Any] = {
            "id": "inbox-triage",
            "title": "Inbox Triage",
            "schedule": "0 8 * * 1-5",
            "goal": "Clear the inbox",
            "policies": ("Archive newsletters",),
            "boundaries": ("Never send emails without approval",),
            "tools": ("gmail",),
        }
        fields.update(overrides)
        return JobDefinition(**fields)

    return _make


@pytest.fixture
def registered_job(stores: SQLiteStores, make_job: Callable[..., JobDefinition]) -> Callable[..., JobDefinition]:
    """Build a job definition and make sure the ledger knows about it."""

    def _register(**overrides: Any) -> JobDefinition:
        job = make_job(**overrides)
        stores.jobs.upsert(job)
        return job

    return _register


@pytest.fixture
def make_executor(stores: SQLiteStores, catalog: ToolCatalog, executor_config: ExecutorConfig) -> Callable[..., Executor]:
    def _make(completion: CompletionService | None = None, **config_overrides: Any) -> Executor:
        config = executor_config
        if config_overrides:
            config = ExecutorConfig(**{**executor_config.__dict__, **config_overrides})
        return Executor(
            catalog=catalog,
            job_store=stores.jobs,
            execution_store=stores.executions,
            action_store=stores.actions,
            config=config,
            completion=completion,
        )

    return _make


@pytest.fixture
def runtime_config(tmp_path: Path, executor_config: ExecutorConfig) -> RuntimeConfig:
    jobs_dir = tmp_path / "jobs"
    jobs_dir.mkdir()
    return RuntimeConfig(
        role="test",
        service=ServiceConfig(host="127.0.0.1", port=0),
        jobs=JobsConfig(jobs_dir=jobs_dir, watch=False, poll_interval_seconds=5),
        storage=StorageConfig(driver="sqlite", sqlite_path=tmp_path / "state" / "runtime.sqlite"),
        scheduler=SchedulerConfig(enabled=False, timezone="UTC"),
        executor=executor_config,
        config_dir=tmp_path,
    )


INBOX_JOB_MD = """# Morning Inbox Triage

## Schedule
0 8 * * 1-5

## Goal
Clear the inbox.

## Boundaries
- Never send emails without approval

## Tools
- gmail
"""

PR_JOB_MD = """# PR Review

## Schedule
0 */2 * * *

## Goal
Review open pull requests.

## Boundaries
- Never approve pull requests without approval

## Tools
- github
"""
