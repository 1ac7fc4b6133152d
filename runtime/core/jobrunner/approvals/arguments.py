"""Best-effort recovery of tool arguments from an action description.

Actions recorded by this runtime store their arguments, so approval replays the
exact call. Rows written before arguments were stored only have the rendered
description; for those we try, in order:

1. a trailing JSON object in parentheses: `tool({"id": "msg-002"})`
2. a flat `key: value` list: `tool(id: "msg-002", body: "Thanks")`
3. tool-specific defaults (draft replies and PR approvals)

This is lossy (values containing ", " split wrongly) and never used when
stored arguments exist.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_JSON = re.compile(r"\((\{.*\})\)\s*$", re.DOTALL)
_FLAT_ARGS = re.compile(r"^[\w.-]+\((.*)\)\s*$", re.DOTALL)
_MESSAGE_ID = re.compile(r"msg-\d+")
_PR_NUMBER = re.compile(r"#(\d+)")


def _parse_value(raw: str) -> Any:
    raw = raw.strip()
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _from_trailing_json(description: str) -> dict[str, Any]:
    m = _TRAILING_JSON.search(description)
    if not m:
        return {}
    try:
        parsed = json.loads(m.group(1))
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _from_flat_list(description: str) -> dict[str, Any]:
    m = _FLAT_ARGS.match(description.strip())
    if not m:
        return {}
    args: dict[str, Any] = {}
    for pair in m.group(1).split(", "):
        key, sep, value = pair.partition(": ")
        if sep and key.strip():
            args[key.strip()] = _parse_value(value)
    return args


def _defaults(description: str, tool: str) -> dict[str, Any]:
    if tool.endswith("draft_reply"):
        m = _MESSAGE_ID.search(description)
        return {"id": m.group(0) if m else "msg-001", "body": "Approved reply"}
    if tool.endswith("approve_pr"):
        m = _PR_NUMBER.search(description)
        return {"pr_number": int(m.group(1)) if m else 1}
    return {}


def reconstruct_arguments(description: str, tool: str) -> dict[str, Any]:
    return _from_trailing_json(description) or _from_flat_list(description) or _defaults(description, tool)
