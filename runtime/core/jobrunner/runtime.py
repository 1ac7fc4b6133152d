"""Runtime wiring and administration surface.

`JobRunner` builds the components from config and exposes the operations the
HTTP layer (or any other front end) needs: trigger, toggle, approve, veto and
the read-side views over the ledger.

Job documents are the source of truth for definitions; the ledger is the
source of truth for the enabled flag once a job has been seen, so a toggle
survives later edits to the document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from jobrunner.approvals.service import ApprovalResult, ApprovalWorkflow
from jobrunner.config.settings import ExecutorConfig, RuntimeConfig
from jobrunner.errors import ConflictError, NotFoundError
from jobrunner.executor.completion import CompletionService, completion_service_from_env
from jobrunner.executor.engine import Executor
from jobrunner.registry.definition import JobDefinition
from jobrunner.registry.registry import JobRegistry
from jobrunner.scheduler.runner import Scheduler, TriggerResult
from jobrunner.storage.interfaces import ActionRecord, ExecutionRecord, JobRecord, PendingApproval
from jobrunner.storage.sqlite import SQLiteStores
from jobrunner.tools.catalog import ToolCatalog, default_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobView:
    job: JobRecord
    scheduled: bool
    running: bool


@dataclass(frozen=True)
class ExecutionView:
    execution: ExecutionRecord
    actions: list[ActionRecord]


class JobRunner:
    def __init__(
        self,
        *,
        config: RuntimeConfig,
        stores: SQLiteStores,
        catalog: ToolCatalog,
        executor: Executor,
        scheduler: Scheduler,
        approvals: ApprovalWorkflow,
        registry: JobRegistry,
    ):
        self.config = config
        self.stores = stores
        self.catalog = catalog
        self.executor = executor
        self.scheduler = scheduler
        self.approvals = approvals
        self.registry = registry

    @classmethod
    def build(
        cls,
        config: RuntimeConfig,
        *,
        catalog: ToolCatalog | None = None,
        completion_factory: Callable[[ExecutorConfig], CompletionService | None] = completion_service_from_env,
    ) -> "JobRunner":
        stores = SQLiteStores(config.storage.sqlite_path)
        catalog = catalog or default_catalog()
        executor = Executor(
            catalog=catalog,
            job_store=stores.jobs,
            execution_store=stores.executions,
            action_store=stores.actions,
            config=config.executor,
            completion=completion_factory(config.executor),
        )
        scheduler = Scheduler(executor=executor, job_store=stores.jobs, config=config.scheduler)
        approvals = ApprovalWorkflow(action_store=stores.actions, execution_store=stores.executions, catalog=catalog)
        registry = JobRegistry(config.jobs.jobs_dir)
        return cls(
            config=config,
            stores=stores,
            catalog=catalog,
            executor=executor,
            scheduler=scheduler,
            approvals=approvals,
            registry=registry,
        )

    # Lifecycle

    def start(self) -> None:
        """Load job documents, register timers and start the scheduler (inside a running event loop)."""
        self.scheduler.initialize(self.sync_jobs(self.registry.load()))
        self.scheduler.start()
        if self.config.jobs.watch:
            self.scheduler.watch(self.poll_job_sources, self.config.jobs.poll_interval_seconds)
        logger.info(
            "runtime_started",
            extra={"event": "runtime_started", "code": "simulation" if self.executor.simulation_mode else "live"},
        )

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    # Job sources

    def sync_jobs(self, definitions: list[JobDefinition]) -> list[JobDefinition]:
        """Upsert definitions into the ledger and return them with the ledger's enabled flag applied."""
        synced: list[JobDefinition] = []
        for definition in definitions:
            record = self.stores.jobs.upsert(definition)
            synced.append(replace(definition, enabled=record.enabled))
        return synced

    def reload_jobs(self) -> list[JobDefinition]:
        synced = self.sync_jobs(self.registry.load())
        self.scheduler.reconcile(synced)
        logger.info("jobs_reloaded", extra={"event": "jobs_reloaded"})
        return synced

    def reload_if_changed(self) -> bool:
        definitions = self.registry.reload_if_changed()
        if definitions is None:
            return False
        self.scheduler.reconcile(self.sync_jobs(definitions))
        logger.info("jobs_reloaded", extra={"event": "jobs_reloaded"})
        return True

    async def poll_job_sources(self) -> None:
        # Async so the scheduler runs it on the event loop, not in a worker thread.
        self.reload_if_changed()

    # Operations

    async def trigger_job(self, job_id: str) -> TriggerResult:
        try:
            return await self.scheduler.trigger(job_id)
        except NotFoundError as e:
            return TriggerResult(success=False, error=str(e), code=e.code)

    def toggle_job(self, job_id: str) -> JobRecord:
        current = self.stores.jobs.get(job_id)
        updated = self.stores.jobs.set_enabled(job_id, not current.enabled)
        if self.scheduler.get_definition(job_id) is not None:
            self.scheduler.reconcile(
                replace(d, enabled=updated.enabled) if d.id == job_id else d for d in self.scheduler.definitions()
            )
        logger.info("job_toggled", extra={"event": "job_toggled", "job_id": job_id, "code": "enabled" if updated.enabled else "disabled"})
        return updated

    def list_scheduled_ids(self) -> list[str]:
        return self.scheduler.list_scheduled_ids()

    def is_running(self, job_id: str) -> bool:
        return self.scheduler.is_running(job_id)

    async def approve_action(self, action_id: str) -> ApprovalResult:
        try:
            return await self.approvals.approve(action_id)
        except (NotFoundError, ConflictError) as e:
            return ApprovalResult(success=False, action_id=action_id, error=str(e), code=e.code)

    async def veto_action(self, action_id: str, reason: str | None = None) -> ApprovalResult:
        try:
            return await self.approvals.veto(action_id, reason)
        except (NotFoundError, ConflictError) as e:
            return ApprovalResult(success=False, action_id=action_id, error=str(e), code=e.code)

    def list_pending_approvals(self) -> list[PendingApproval]:
        return self.approvals.list_pending()

    # Read-side views

    def list_jobs(self) -> list[JobView]:
        scheduled = set(self.scheduler.list_scheduled_ids())
        return [JobView(job=j, scheduled=j.id in scheduled, running=self.is_running(j.id)) for j in self.stores.jobs.get_all()]

    def get_job(self, job_id: str) -> JobView:
        job = self.stores.jobs.get(job_id)
        return JobView(job=job, scheduled=job_id in self.scheduler.list_scheduled_ids(), running=self.is_running(job_id))

    def list_executions(self, job_id: str, limit: int = 20) -> list[ExecutionRecord]:
        self.stores.jobs.get(job_id)
        return self.stores.executions.list_by_job(job_id, limit)

    def timeline(self, limit: int = 50, offset: int = 0) -> list[ExecutionRecord]:
        return self.stores.executions.list_recent(limit, offset)

    def get_execution(self, execution_id: str) -> ExecutionView:
        execution = self.stores.executions.get(execution_id)
        return ExecutionView(execution=execution, actions=self.stores.actions.list_by_execution(execution_id))
