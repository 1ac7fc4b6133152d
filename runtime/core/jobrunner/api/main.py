"""FastAPI administration surface for the job runner."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, Query
from fastapi.responses import JSONResponse

from jobrunner.approvals.service import ApprovalResult
from jobrunner.config.logging import apply_logging_config
from jobrunner.config.settings import default_config_paths, load_runtime_config
from jobrunner.errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ToolInvocationError,
)
from jobrunner.runtime import ExecutionView, JobRunner, JobView
from jobrunner.scheduler.runner import TriggerResult
from jobrunner.storage.interfaces import ActionRecord, ExecutionRecord, JobRecord, PendingApproval
from jobrunner.utils import format_rfc3339

logger = logging.getLogger(__name__)

_TRIGGER_STATUS = {
    "JOB_NOT_FOUND": 404,
    "DEFINITION_NOT_FOUND": 404,
    "ALREADY_RUNNING": 409,
}

_APPROVAL_STATUS = {
    "ACTION_NOT_FOUND": 404,
    "EXECUTION_NOT_FOUND": 404,
    "NOT_PENDING": 409,
    "CONFLICT": 409,
}


def _ts(value: Any) -> str | None:
    return format_rfc3339(value) if value is not None else None


def _job_payload(view: JobView) -> dict[str, Any]:
    job: JobRecord = view.job
    return {
        "id": job.id,
        "title": job.title,
        "schedule": job.schedule,
        "goal": job.goal,
        "policies": list(job.policies),
        "boundaries": list(job.boundaries),
        "tools": list(job.tools),
        "file_path": job.file_path,
        "enabled": job.enabled,
        "last_run": _ts(job.last_run),
        "next_run": _ts(job.next_run),
        "scheduled": view.scheduled,
        "is_running": view.running,
    }


def _execution_payload(execution: ExecutionRecord) -> dict[str, Any]:
    return {
        "id": execution.id,
        "job_id": execution.job_id,
        "job_title": execution.job_title,
        "started_at": _ts(execution.started_at),
        "completed_at": _ts(execution.completed_at),
        "status": execution.status.value,
        "summary": execution.summary,
        "error": execution.error,
    }


def _action_payload(action: ActionRecord) -> dict[str, Any]:
    return {
        "id": action.id,
        "execution_id": action.execution_id,
        "description": action.description,
        "tool": action.tool,
        "status": action.status.value,
        "boundary_violation": action.boundary_violation,
        "result": action.result,
        "arguments": action.arguments,
        "created_at": _ts(action.created_at),
    }


def _pending_payload(pending: PendingApproval) -> dict[str, Any]:
    payload = _action_payload(pending.action)
    payload.update({"job_id": pending.job_id, "job_title": pending.job_title, "execution_status": pending.execution_status.value})
    return payload


def _error_payload(err: Exception) -> dict[str, Any]:
    if isinstance(err, ToolInvocationError):
        return {"error": "TOOL_INVOCATION", "code": err.code, "message": str(err), "details": err.details}
    if isinstance(err, ConflictError):
        return {"error": "CONFLICT", "code": err.code, "message": str(err), "details": err.details}
    if isinstance(err, NotFoundError):
        return {"error": "NOT_FOUND", "code": err.code, "resource_type": err.resource_type, "resource_id": err.resource_id}
    if isinstance(err, ConfigurationError):
        return {"error": "CONFIGURATION", "message": str(err), "details": err.details}
    return {"error": "INTERNAL", "message": str(err)}


def _env_path(name: str) -> Path | None:
    v = os.environ.get(name)
    if not v:
        return None
    return Path(v)


def build_runner_from_env() -> JobRunner:
    default_runtime, default_logging = default_config_paths()
    runtime_cfg_path = _env_path("JOBRUNNER_RUNTIME_CONFIG") or default_runtime
    logging_cfg_path = _env_path("JOBRUNNER_LOGGING_CONFIG") or default_logging

    config = load_runtime_config(runtime_cfg_path)
    apply_logging_config(logging_cfg_path)
    return JobRunner.build(config)


def _trigger_response(result: TriggerResult) -> JSONResponse:
    if result.success:
        return JSONResponse(
            status_code=200,
            content={"success": True, "execution_id": result.execution_id, "status": result.status.value if result.status else None},
        )
    return JSONResponse(
        status_code=_TRIGGER_STATUS.get(result.code or "", 500),
        content={"success": False, "error": result.error, "code": result.code},
    )


def _approval_response(result: ApprovalResult) -> JSONResponse:
    payload = asdict(result)
    if result.new_status is not None:
        payload["new_status"] = result.new_status.value
    status_code = 200 if result.success else _APPROVAL_STATUS.get(result.code or "", 500)
    return JSONResponse(status_code=status_code, content=payload)


def create_app(runner: JobRunner | None = None) -> FastAPI:
    app = FastAPI(title="JobRunner", version="0.1.0")

    @app.on_event("startup")
    async def _startup() -> None:
        # Fail closed at startup if config or job sources cannot be loaded.
        app.state.runner = runner or build_runner_from_env()
        app.state.runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        app.state.runner.shutdown()
        logger.info("runtime_stopped", extra={"event": "runtime_stopped"})

    @app.exception_handler(ToolInvocationError)
    def _tool_invocation_handler(_req, exc: ToolInvocationError):
        return JSONResponse(status_code=422, content=_error_payload(exc))

    @app.exception_handler(ConflictError)
    def _conflict_handler(_req, exc: ConflictError):
        return JSONResponse(status_code=409, content=_error_payload(exc))

    @app.exception_handler(NotFoundError)
    def _not_found_handler(_req, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_payload(exc))

    @app.exception_handler(Exception)
    def _unhandled_handler(_req, exc: Exception):
        logger.exception("unhandled_error", extra={"event": "unhandled_error"})
        return JSONResponse(status_code=500, content=_error_payload(exc))

    def _runner() -> JobRunner:
        return app.state.runner

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Returns 200 once config, ledger and job sources are loaded."""
        r = _runner()
        return {
            "status": "ok",
            "mode": "simulation" if r.executor.simulation_mode else "live",
            "scheduled_jobs": r.list_scheduled_ids(),
        }

    @app.get("/jobs")
    async def list_jobs() -> dict[str, Any]:
        return {"jobs": [_job_payload(v) for v in _runner().list_jobs()]}

    # Routes that read or reconcile scheduler state run on the event loop.
    @app.post("/jobs/reload")
    async def reload_jobs() -> dict[str, Any]:
        synced = _runner().reload_jobs()
        return {"reloaded": len(synced), "scheduled_jobs": _runner().list_scheduled_ids()}

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str, limit: int = Query(20, ge=1, le=200)) -> dict[str, Any]:
        r = _runner()
        view = r.get_job(job_id)
        return {"job": _job_payload(view), "executions": [_execution_payload(e) for e in r.list_executions(job_id, limit)]}

    @app.post("/jobs/{job_id}/run")
    async def run_job(job_id: str) -> JSONResponse:
        return _trigger_response(await _runner().trigger_job(job_id))

    @app.post("/jobs/{job_id}/toggle")
    async def toggle_job(job_id: str) -> dict[str, Any]:
        r = _runner()
        r.toggle_job(job_id)
        return {"job": _job_payload(r.get_job(job_id))}

    @app.get("/timeline")
    def timeline(limit: int = Query(50, ge=1, le=500), offset: int = Query(0, ge=0)) -> dict[str, Any]:
        return {"executions": [_execution_payload(e) for e in _runner().timeline(limit, offset)]}

    @app.get("/executions/{execution_id}")
    def get_execution(execution_id: str) -> dict[str, Any]:
        view: ExecutionView = _runner().get_execution(execution_id)
        return {"execution": _execution_payload(view.execution), "actions": [_action_payload(a) for a in view.actions]}

    @app.get("/approvals")
    def list_approvals() -> dict[str, Any]:
        return {"approvals": [_pending_payload(p) for p in _runner().list_pending_approvals()]}

    @app.post("/actions/{action_id}/approve")
    async def approve_action(action_id: str) -> JSONResponse:
        return _approval_response(await _runner().approve_action(action_id))

    @app.post("/actions/{action_id}/veto")
    async def veto_action(action_id: str, body: dict[str, Any] | None = Body(None)) -> JSONResponse:
        reason = (body or {}).get("reason")
        return _approval_response(await _runner().veto_action(action_id, str(reason) if reason else None))

    return app


app = create_app()


def main() -> None:
    """Serve the API on the host and port from runtime.yaml."""
    runner = build_runner_from_env()
    service = runner.config.service
    # Logging is already configured from logging.yaml; keep uvicorn from replacing it.
    uvicorn.run(create_app(runner), host=service.host, port=service.port, log_config=None)
