"""Small utility helpers used across the runtime."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_rfc3339(dt: str) -> datetime:
    """Parse the RFC3339 timestamps written by `format_rfc3339`.

    Python's datetime.fromisoformat does not accept trailing "Z" before 3.11, so we normalize.
    """
    s = dt.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware (include Z or offset)")
    return parsed.astimezone(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def optional_rfc3339(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return parse_rfc3339(raw)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=True, sort_keys=True, separators=(",", ":"))


def json_loads_list(raw: str | None) -> list[Any]:
    if not raw:
        return []
    value = json.loads(raw)
    return value if isinstance(value, list) else []
