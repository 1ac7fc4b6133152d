"""SQLite storage driver (default persistence).

This module provides a simple SQLite implementation behind the DB-agnostic
storage interfaces. SQLite is used only as a local, file-backed ledger.

Tables:
- jobs: one row per job document id; definition fields are refreshed on reload
- executions: one row per run, mutable only through the state machine
- actions: append-only except for status/result on approval decisions
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from jobrunner.errors import (
    ActionNotFoundError,
    ConfigurationError,
    ConflictError,
    ExecutionNotFoundError,
    JobNotFoundError,
)
from jobrunner.executor.state_machine import ActionStatus, ExecutionStatus
from jobrunner.registry.definition import JobDefinition
from jobrunner.storage.interfaces import (
    ActionRecord,
    ActionStore,
    ExecutionRecord,
    ExecutionStore,
    JobRecord,
    JobStore,
    PendingApproval,
)
from jobrunner.utils import format_rfc3339, json_dumps, json_loads_list, optional_rfc3339, parse_rfc3339

_SCHEMA_VERSION = 1


def _ts(dt: datetime | None) -> str | None:
    return format_rfc3339(dt) if dt is not None else None


def _row_to_job(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        id=row["id"],
        title=row["title"],
        schedule=row["schedule"],
        goal=row["goal"],
        policies=tuple(json_loads_list(row["policies_json"])),
        boundaries=tuple(json_loads_list(row["boundaries_json"])),
        tools=tuple(json_loads_list(row["tools_json"])),
        file_path=row["file_path"],
        enabled=bool(row["enabled"]),
        last_run=optional_rfc3339(row["last_run"]),
        next_run=optional_rfc3339(row["next_run"]),
    )


def _row_to_execution(row: sqlite3.Row) -> ExecutionRecord:
    keys = row.keys()
    return ExecutionRecord(
        id=row["id"],
        job_id=row["job_id"],
        started_at=parse_rfc3339(row["started_at"]),
        status=ExecutionStatus(row["status"]),
        completed_at=optional_rfc3339(row["completed_at"]),
        summary=row["summary"],
        error=row["error"],
        job_title=row["job_title"] if "job_title" in keys else None,
    )


def _row_to_action(row: sqlite3.Row) -> ActionRecord:
    arguments = json.loads(row["arguments_json"]) if row["arguments_json"] else None
    return ActionRecord(
        id=row["id"],
        execution_id=row["execution_id"],
        description=row["description"],
        status=ActionStatus(row["status"]),
        created_at=parse_rfc3339(row["created_at"]),
        tool=row["tool"],
        boundary_violation=row["boundary_violation"],
        result=row["result"],
        arguments=arguments if isinstance(arguments, dict) else None,
    )


def _assignments(fields: dict[str, Any]) -> tuple[str, list[Any]]:
    cols = sorted(fields)
    return ", ".join(f"{c} = ?" for c in cols), [fields[c] for c in cols]


class SQLiteDatabase:
    def __init__(self, path: Path):
        self.path = path.resolve()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._migrate()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            yield conn
        finally:
            conn.close()

    def _migrate(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                  version INTEGER NOT NULL
                );
                """
            )
            row = conn.execute("SELECT version FROM schema_version LIMIT 1;").fetchone()
            if row is None:
                conn.execute("INSERT INTO schema_version(version) VALUES (?);", (_SCHEMA_VERSION,))
                version = _SCHEMA_VERSION
            else:
                version = int(row["version"])

            if version != _SCHEMA_VERSION:
                raise ConfigurationError(f"Unsupported SQLite schema_version: {version}")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                  id TEXT PRIMARY KEY,
                  title TEXT NOT NULL,
                  schedule TEXT NOT NULL,
                  goal TEXT NOT NULL,
                  policies_json TEXT NOT NULL DEFAULT '[]',
                  boundaries_json TEXT NOT NULL DEFAULT '[]',
                  tools_json TEXT NOT NULL DEFAULT '[]',
                  file_path TEXT,
                  enabled INTEGER NOT NULL DEFAULT 1,
                  last_run TEXT,
                  next_run TEXT
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                  id TEXT PRIMARY KEY,
                  job_id TEXT NOT NULL REFERENCES jobs(id),
                  started_at TEXT NOT NULL,
                  completed_at TEXT,
                  status TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed', 'awaiting-approval')),
                  summary TEXT,
                  error TEXT
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_job_started ON executions(job_id, started_at);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_started ON executions(started_at);")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS actions (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  id TEXT NOT NULL UNIQUE,
                  execution_id TEXT NOT NULL REFERENCES executions(id),
                  description TEXT NOT NULL,
                  tool TEXT,
                  status TEXT NOT NULL CHECK (status IN ('executed', 'pending-approval', 'approved', 'vetoed')),
                  boundary_violation TEXT,
                  result TEXT,
                  arguments_json TEXT,
                  created_at TEXT NOT NULL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_actions_execution ON actions(execution_id, seq);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_actions_status ON actions(status);")


class SQLiteJobStore(JobStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    def get_all(self) -> list[JobRecord]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY title, id;").fetchall()
        return [_row_to_job(r) for r in rows]

    def get(self, job_id: str) -> JobRecord:
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def find(self, job_id: str) -> JobRecord | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?;", (job_id,)).fetchone()
        return _row_to_job(row) if row is not None else None

    def upsert(self, job: JobDefinition) -> JobRecord:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO jobs(id, title, schedule, goal, policies_json, boundaries_json, tools_json, file_path, enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  title = excluded.title,
                  schedule = excluded.schedule,
                  goal = excluded.goal,
                  policies_json = excluded.policies_json,
                  boundaries_json = excluded.boundaries_json,
                  tools_json = excluded.tools_json,
                  file_path = excluded.file_path;
                """,
                (
                    job.id,
                    job.title,
                    job.schedule,
                    job.goal,
                    json.dumps(list(job.policies)),
                    json.dumps(list(job.boundaries)),
                    json.dumps(list(job.tools)),
                    str(job.file_path) if job.file_path is not None else None,
                    1 if job.enabled else 0,
                ),
            )
        return self.get(job.id)

    def set_enabled(self, job_id: str, enabled: bool) -> JobRecord:
        self._update(job_id, {"enabled": 1 if enabled else 0})
        return self.get(job_id)

    def set_next_run(self, job_id: str, next_run: datetime | None) -> None:
        self._update(job_id, {"next_run": _ts(next_run)})

    def set_last_run(self, job_id: str, last_run: datetime) -> None:
        self._update(job_id, {"last_run": _ts(last_run)})

    def _update(self, job_id: str, fields: dict[str, Any]) -> None:
        assignments, values = _assignments(fields)
        with self._db.connect() as conn:
            cur = conn.execute(f"UPDATE jobs SET {assignments} WHERE id = ?;", (*values, job_id))
            if cur.rowcount != 1:
                raise JobNotFoundError(job_id)


class SQLiteExecutionStore(ExecutionStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    def create(self, execution: ExecutionRecord) -> None:
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO executions(id, job_id, started_at, completed_at, status, summary, error)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        execution.id,
                        execution.job_id,
                        format_rfc3339(execution.started_at),
                        _ts(execution.completed_at),
                        ExecutionStatus(execution.status).value,
                        execution.summary,
                        execution.error,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"Cannot create execution {execution.id}: {e}") from e

    def get(self, execution_id: str) -> ExecutionRecord:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT e.*, j.title AS job_title
                FROM executions e LEFT JOIN jobs j ON j.id = e.job_id
                WHERE e.id = ?;
                """,
                (execution_id,),
            ).fetchone()
        if row is None:
            raise ExecutionNotFoundError(execution_id)
        return _row_to_execution(row)

    def update(
        self,
        execution_id: str,
        *,
        status: ExecutionStatus | None = None,
        completed_at: datetime | None = None,
        summary: str | None = None,
        error: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {}
        if status is not None:
            fields["status"] = ExecutionStatus(status).value
        if completed_at is not None:
            fields["completed_at"] = format_rfc3339(completed_at)
        if summary is not None:
            fields["summary"] = summary
        if error is not None:
            fields["error"] = error
        if not fields:
            return
        assignments, values = _assignments(fields)
        with self._db.connect() as conn:
            cur = conn.execute(f"UPDATE executions SET {assignments} WHERE id = ?;", (*values, execution_id))
            if cur.rowcount != 1:
                raise ExecutionNotFoundError(execution_id)

    def list_by_job(self, job_id: str, limit: int = 20) -> list[ExecutionRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT e.*, j.title AS job_title
                FROM executions e LEFT JOIN jobs j ON j.id = e.job_id
                WHERE e.job_id = ?
                ORDER BY e.started_at DESC, e.rowid DESC
                LIMIT ?;
                """,
                (job_id, int(limit)),
            ).fetchall()
        return [_row_to_execution(r) for r in rows]

    def list_recent(self, limit: int = 50, offset: int = 0) -> list[ExecutionRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT e.*, j.title AS job_title
                FROM executions e LEFT JOIN jobs j ON j.id = e.job_id
                ORDER BY e.started_at DESC, e.rowid DESC
                LIMIT ? OFFSET ?;
                """,
                (int(limit), int(offset)),
            ).fetchall()
        return [_row_to_execution(r) for r in rows]


class SQLiteActionStore(ActionStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    def create(self, action: ActionRecord) -> None:
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO actions(id, execution_id, description, tool, status, boundary_violation, result, arguments_json, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        action.id,
                        action.execution_id,
                        action.description,
                        action.tool,
                        ActionStatus(action.status).value,
                        action.boundary_violation,
                        action.result,
                        json_dumps(action.arguments) if action.arguments is not None else None,
                        format_rfc3339(action.created_at),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"Cannot create action {action.id}: {e}") from e

    def get(self, action_id: str) -> ActionRecord:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM actions WHERE id = ?;", (action_id,)).fetchone()
        if row is None:
            raise ActionNotFoundError(action_id)
        return _row_to_action(row)

    def update(
        self,
        action_id: str,
        *,
        status: ActionStatus | None = None,
        result: str | None = None,
        boundary_violation: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {}
        if status is not None:
            fields["status"] = ActionStatus(status).value
        if result is not None:
            fields["result"] = result
        if boundary_violation is not None:
            fields["boundary_violation"] = boundary_violation
        if not fields:
            return
        assignments, values = _assignments(fields)
        with self._db.connect() as conn:
            cur = conn.execute(f"UPDATE actions SET {assignments} WHERE id = ?;", (*values, action_id))
            if cur.rowcount != 1:
                raise ActionNotFoundError(action_id)

    def list_by_execution(self, execution_id: str) -> list[ActionRecord]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM actions WHERE execution_id = ? ORDER BY seq;", (execution_id,)).fetchall()
        return [_row_to_action(r) for r in rows]

    def list_pending_with_context(self) -> list[PendingApproval]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT a.*, e.job_id AS ctx_job_id, e.status AS ctx_execution_status, j.title AS ctx_job_title
                FROM actions a
                JOIN executions e ON e.id = a.execution_id
                LEFT JOIN jobs j ON j.id = e.job_id
                WHERE a.status = ?
                ORDER BY a.created_at DESC, a.seq DESC;
                """,
                (ActionStatus.PENDING_APPROVAL.value,),
            ).fetchall()
        return [
            PendingApproval(
                action=_row_to_action(r),
                job_id=r["ctx_job_id"],
                job_title=r["ctx_job_title"] or r["ctx_job_id"],
                execution_status=ExecutionStatus(r["ctx_execution_status"]),
            )
            for r in rows
        ]


class SQLiteStores:
    """Convenience container for the SQLite-backed stores."""

    def __init__(self, sqlite_path: Path):
        db = SQLiteDatabase(sqlite_path)
        self.jobs: JobStore = SQLiteJobStore(db)
        self.executions: ExecutionStore = SQLiteExecutionStore(db)
        self.actions: ActionStore = SQLiteActionStore(db)
