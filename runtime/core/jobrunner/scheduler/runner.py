"""Cron scheduler for job definitions.

The scheduler owns three private tables:
- timers: job id -> APScheduler job firing on the job's cron schedule
- definitions: job id -> latest JobDefinition (kept even without a timer so
  manual triggers keep working for disabled jobs or unusable schedules)
- running: ids of jobs with a run in flight

Timer ticks and manual triggers share one run routine, so at most one run per
job is in flight no matter where the request came from. A tick that arrives
while the job is still running is skipped, not queued.

Scheduling is in-memory only: nothing survives a restart except what the
ledger records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from jobrunner.config.settings import SchedulerConfig
from jobrunner.errors import (
    AlreadyRunningError,
    ConflictError,
    DefinitionNotFoundError,
    InvalidScheduleError,
    JobNotFoundError,
    NotFoundError,
)
from jobrunner.executor.engine import Executor
from jobrunner.executor.state_machine import ExecutionStatus
from jobrunner.registry.definition import JobDefinition
from jobrunner.scheduler.next_run import estimate_next_run
from jobrunner.storage.interfaces import JobStore

logger = logging.getLogger(__name__)

WATCH_JOB_ID = "__job_source_watch__"

# APScheduler 3.x numbers weekdays from Monday=0; job documents use crontab numbering (Sunday=0 or 7).
_CRON_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


@dataclass(frozen=True)
class TriggerResult:
    success: bool
    execution_id: str | None = None
    status: ExecutionStatus | None = None
    error: str | None = None
    code: str | None = None


def _refused(err: ConflictError | NotFoundError) -> TriggerResult:
    return TriggerResult(success=False, error=str(err), code=err.code)


def _translate_day_of_week(job_id: str, schedule: str, field: str) -> str:
    if field in ("*", "?"):
        return "*"
    names: list[str] = []
    for part in field.split(","):
        body, _, step_raw = part.partition("/")
        step = int(step_raw) if step_raw.isdigit() and int(step_raw) > 0 else 1
        if step_raw and step_raw != str(step):
            raise InvalidScheduleError(job_id, schedule, f"invalid day-of-week step: {part}")
        if body == "*":
            lo, hi = 0, 6
        elif "-" in body:
            lo_raw, _, hi_raw = body.partition("-")
            if not (lo_raw.isdigit() and hi_raw.isdigit()):
                # Named ranges (mon-fri) are passed through unchanged.
                names.append(part)
                continue
            lo, hi = int(lo_raw), int(hi_raw)
        elif body.isdigit():
            lo = hi = int(body)
        else:
            names.append(part)
            continue
        if lo > hi or hi > 7:
            raise InvalidScheduleError(job_id, schedule, f"invalid day-of-week range: {part}")
        names.extend(_CRON_DAY_NAMES[d] for d in range(lo, hi + 1, step))
    # Order-preserving de-duplication (0 and 7 both mean Sunday).
    return ",".join(dict.fromkeys(names))


def build_cron_trigger(job_id: str, schedule: str, *, timezone: str | None = None) -> CronTrigger:
    """Build a timer trigger from a 5-field crontab expression, or raise InvalidScheduleError."""
    fields = schedule.split()
    if len(fields) != 5:
        raise InvalidScheduleError(job_id, schedule, f"expected 5 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(job_id, schedule, day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise InvalidScheduleError(job_id, schedule, str(e)) from e


def is_valid_schedule(schedule: str) -> bool:
    try:
        build_cron_trigger("-", schedule)
    except InvalidScheduleError:
        return False
    return True


class Scheduler:
    def __init__(
        self,
        *,
        executor: Executor,
        job_store: JobStore,
        config: SchedulerConfig,
        backend: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._executor = executor
        self._jobs = job_store
        self._config = config
        if backend is None:
            backend = AsyncIOScheduler(timezone=config.timezone) if config.timezone else AsyncIOScheduler()
        self._backend = backend
        self._clock = clock or self._local_now
        self._timers: dict[str, Any] = {}
        self._definitions: dict[str, JobDefinition] = {}
        self._running: set[str] = set()

    def _local_now(self) -> datetime:
        if self._config.timezone:
            return datetime.now(ZoneInfo(self._config.timezone))
        return datetime.now().astimezone()

    # Lifecycle

    def start(self) -> None:
        """Start firing timers. Must be called from inside a running event loop."""
        if not self._config.enabled:
            logger.info("scheduler_disabled", extra={"event": "scheduler_disabled"})
            return
        if not self._backend.running:
            self._backend.start()
            logger.info("scheduler_started", extra={"event": "scheduler_started"})

    def shutdown(self) -> None:
        if self._backend.running:
            self._backend.shutdown(wait=False)
            logger.info("scheduler_stopped", extra={"event": "scheduler_stopped"})

    # Registration

    def initialize(self, jobs: Iterable[JobDefinition]) -> None:
        for job_id in list(self._timers):
            self._remove_timer(job_id)
        self._definitions.clear()
        for job in jobs:
            self.register_or_replace(job)

    def register_or_replace(self, job: JobDefinition) -> bool:
        """Store the definition and (re)create its timer. Returns whether a timer is now live."""
        self._remove_timer(job.id)
        self._definitions[job.id] = job

        if not job.enabled:
            logger.info("job_not_scheduled_disabled", extra={"event": "job_not_scheduled_disabled", "job_id": job.id})
            return False

        try:
            trigger = build_cron_trigger(job.id, job.schedule, timezone=self._config.timezone)
        except InvalidScheduleError as e:
            logger.warning(
                "job_schedule_invalid: %s",
                e.reason,
                extra={"event": "job_schedule_invalid", "job_id": job.id, "schedule": job.schedule},
            )
            return False

        self._timers[job.id] = self._backend.add_job(
            self._fire,
            trigger,
            args=[job.id],
            id=job.id,
            name=job.title,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("job_scheduled", extra={"event": "job_scheduled", "job_id": job.id, "schedule": job.schedule})
        self._persist_next_run(job)
        return True

    def unregister(self, job_id: str) -> None:
        self._remove_timer(job_id)
        self._definitions.pop(job_id, None)
        logger.info("job_unscheduled", extra={"event": "job_unscheduled", "job_id": job_id})

    def reconcile(self, jobs: Iterable[JobDefinition]) -> None:
        """Bring timers in line with a fresh list of definitions without churning unchanged jobs."""
        incoming = {job.id: job for job in jobs}

        for job_id in list(self._definitions):
            if job_id not in incoming:
                self.unregister(job_id)

        for job in incoming.values():
            previous = self._definitions.get(job.id)
            if not job.enabled:
                self._remove_timer(job.id)
                self._definitions[job.id] = job
                continue
            if previous is None or previous.schedule != job.schedule or job.id not in self._timers:
                self.register_or_replace(job)
            else:
                self._definitions[job.id] = job

    def watch(self, callback: Callable[[], Any], interval_seconds: int) -> None:
        """Register a maintenance callback (job source polling). Not listed as a job timer."""
        self._backend.add_job(
            callback,
            IntervalTrigger(seconds=interval_seconds),
            id=WATCH_JOB_ID,
            name="job source watch",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _remove_timer(self, job_id: str) -> None:
        if self._timers.pop(job_id, None) is None:
            return
        try:
            self._backend.remove_job(job_id)
        except JobLookupError:
            pass

    # Queries

    def list_scheduled_ids(self) -> list[str]:
        return sorted(self._timers)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._running

    def get_definition(self, job_id: str) -> JobDefinition | None:
        return self._definitions.get(job_id)

    def definitions(self) -> list[JobDefinition]:
        return list(self._definitions.values())

    # Runs

    async def trigger(self, job_id: str) -> TriggerResult:
        """Run a job now, outside its schedule. Raises JobNotFoundError for unknown ids."""
        if job_id not in self._definitions:
            raise JobNotFoundError(job_id)
        return await self._run(job_id)

    async def _fire(self, job_id: str) -> None:
        result = await self._run(job_id)
        if not result.success:
            logger.info(
                "job_run_skipped: %s",
                result.error,
                extra={"event": "job_run_skipped", "job_id": job_id, "code": result.code},
            )

    async def _run(self, job_id: str) -> TriggerResult:
        if job_id in self._running:
            return _refused(AlreadyRunningError(job_id))

        definition = self._definitions.get(job_id)
        if definition is None:
            return _refused(DefinitionNotFoundError(job_id))

        self._running.add(job_id)
        try:
            result = await self._executor.run(definition)
        except Exception as e:
            logger.exception("job_run_failed", extra={"event": "job_run_failed", "job_id": job_id})
            return TriggerResult(success=False, error=str(e) or type(e).__name__, code="RUN_FAILED")
        finally:
            self._running.discard(job_id)

        self._persist_next_run(definition)
        return TriggerResult(success=True, execution_id=result.execution_id, status=result.status)

    def _persist_next_run(self, job: JobDefinition) -> None:
        estimate = estimate_next_run(job.schedule, now=self._clock())
        if estimate is None:
            return
        try:
            self._jobs.set_next_run(job.id, estimate.at)
        except Exception:
            # Display-only value; a stale estimate must not fail the run.
            logger.warning("next_run_not_persisted", exc_info=True, extra={"event": "next_run_not_persisted", "job_id": job.id})
