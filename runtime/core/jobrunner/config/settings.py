"""Configuration loader for the job runner.

Rules:
- Fail closed when config is missing or invalid.
- All relative paths in runtime.yaml are resolved relative to runtime.yaml's directory.
- Secrets (the completion-service credential) are never read from YAML, only
  from the environment variable named in `executor.api_key_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from jobrunner.errors import ConfigurationError

_SUPPORTED_STORAGE_DRIVERS = ("sqlite",)


@dataclass(frozen=True)
class ServiceConfig:
    host: str
    port: int


@dataclass(frozen=True)
class JobsConfig:
    jobs_dir: Path
    watch: bool
    poll_interval_seconds: int


@dataclass(frozen=True)
class StorageConfig:
    driver: str
    sqlite_path: Path


@dataclass(frozen=True)
class SchedulerConfig:
    enabled: bool
    timezone: str | None = None


@dataclass(frozen=True)
class ExecutorConfig:
    model: str
    max_tokens: int
    max_turns: int
    run_timeout_seconds: float
    api_key_env: str

    def api_key(self) -> str | None:
        value = os.environ.get(self.api_key_env)
        return value or None


@dataclass(frozen=True)
class RuntimeConfig:
    role: str  # dev|prod
    service: ServiceConfig
    jobs: JobsConfig
    storage: StorageConfig
    scheduler: SchedulerConfig
    executor: ExecutorConfig
    config_dir: Path


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing required config file: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid YAML root object in config file: {path}")
    return data


def _resolve_path(base_dir: Path, raw: str) -> Path:
    p = Path(raw)
    if p.is_absolute():
        return p
    return (base_dir / p).resolve()


def _positive_int(section: str, key: str, raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{section}.{key} must be an integer (got {raw!r})") from e
    if value <= 0:
        raise ConfigurationError(f"{section}.{key} must be positive (got {value})")
    return value


def load_runtime_config(runtime_config_path: Path) -> RuntimeConfig:
    cfg_dir = runtime_config_path.parent.resolve()
    raw = _load_yaml(runtime_config_path)

    runtime_raw = raw.get("runtime") or {}
    service_raw = raw.get("service") or {}
    jobs_raw = raw.get("jobs") or {}
    storage_raw = raw.get("storage") or {}
    scheduler_raw = raw.get("scheduler") or {}
    executor_raw = raw.get("executor") or {}

    service = ServiceConfig(
        host=str(service_raw.get("host", "0.0.0.0")),
        port=int(service_raw.get("port", 8080)),
    )

    jobs = JobsConfig(
        jobs_dir=_resolve_path(cfg_dir, str(jobs_raw.get("dir", "../../../jobs"))),
        watch=bool(jobs_raw.get("watch", True)),
        poll_interval_seconds=_positive_int("jobs", "poll_interval_seconds", jobs_raw.get("poll_interval_seconds", 5)),
    )

    driver = str(storage_raw.get("driver", "sqlite"))
    if driver not in _SUPPORTED_STORAGE_DRIVERS:
        raise ConfigurationError(f"Unsupported storage driver: {driver}", details={"supported": list(_SUPPORTED_STORAGE_DRIVERS)})
    sqlite_path = _resolve_path(cfg_dir, str((storage_raw.get("sqlite") or {}).get("path", "../state/jobrunner.sqlite")))
    storage = StorageConfig(driver=driver, sqlite_path=sqlite_path)

    tz = scheduler_raw.get("timezone")
    scheduler = SchedulerConfig(
        enabled=bool(scheduler_raw.get("enabled", True)),
        timezone=str(tz) if tz else None,
    )

    executor = ExecutorConfig(
        model=str(executor_raw.get("model", "claude-sonnet-4-5-20250929")),
        max_tokens=_positive_int("executor", "max_tokens", executor_raw.get("max_tokens", 4096)),
        max_turns=_positive_int("executor", "max_turns", executor_raw.get("max_turns", 25)),
        run_timeout_seconds=float(_positive_int("executor", "run_timeout_seconds", executor_raw.get("run_timeout_seconds", 600))),
        api_key_env=str(executor_raw.get("api_key_env", "ANTHROPIC_API_KEY")),
    )

    return RuntimeConfig(
        role=str(runtime_raw.get("role", "dev")),
        service=service,
        jobs=jobs,
        storage=storage,
        scheduler=scheduler,
        executor=executor,
        config_dir=cfg_dir,
    )


def default_config_paths() -> tuple[Path, Path]:
    # Default to paths relative to the runtime working directory (runtime/core).
    runtime_path = Path.cwd() / "config" / "runtime.yaml"
    logging_path = Path.cwd() / "config" / "logging.yaml"
    return runtime_path, logging_path
