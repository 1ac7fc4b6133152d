"""Logging helpers.

The runtime uses Python logging with a JSON formatter so every scheduler tick,
tool call and approval decision leaves a machine-readable trail.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from jobrunner.errors import ConfigurationError

_STRUCTURED_EXTRAS = ("job_id", "execution_id", "action_id", "tool", "schedule", "event", "code")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Common structured extras (when provided).
        for k in _STRUCTURED_EXTRAS:
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, sort_keys=True)


def load_logging_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing required logging config file: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid logging config YAML root object: {path}")
    return raw


def apply_logging_config(path: Path) -> None:
    logging.config.dictConfig(load_logging_config(path))
