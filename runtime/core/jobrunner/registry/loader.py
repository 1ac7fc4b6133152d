"""Job document loader (Markdown/YAML -> JobDefinition).

Job documents live directly inside the jobs directory and are treated as
configuration, not state: state lives in the ledger.

Markdown layout:

    # Morning Inbox Triage

    ## Schedule
    0 8 * * 1-5

    ## Goal
    Clear the inbox before the day starts.

    ## Policies
    - Archive newsletters

    ## Boundaries
    - Never send emails without approval

    ## Tools
    - gmail

YAML documents carry the same fields as top-level keys.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable

import yaml

from jobrunner.errors import JobDefinitionError
from jobrunner.registry.definition import JobDefinition

logger = logging.getLogger(__name__)

JOB_FILE_SUFFIXES = (".job.md", ".job.yaml", ".job.yml")

_SECTION_ALIASES: dict[str, str] = {
    "schedule": "schedule",
    "goal": "goal",
    "policies": "policies",
    "policy": "policies",
    "boundaries": "boundaries",
    "boundary": "boundaries",
    "tools": "tools",
    "enabled": "enabled",
    "status": "enabled",
}

_LIST_ITEM = re.compile(r"^(?:[-*]|\d+\.)\s+(.*)$")
_DISABLED_VALUES = ("false", "disabled")


def job_id_for_path(path: Path) -> str:
    name = path.name
    for suffix in JOB_FILE_SUFFIXES:
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    raise JobDefinitionError(path, f"not a job document (expected one of {', '.join(JOB_FILE_SUFFIXES)})")


def is_job_file(path: Path) -> bool:
    return path.is_file() and path.name.lower().endswith(JOB_FILE_SUFFIXES)


def iter_job_files(root: Path) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.iterdir() if is_job_file(p))


def _parse_list(lines: list[str]) -> tuple[str, ...]:
    items: list[str] = []
    for line in lines:
        m = _LIST_ITEM.match(line.strip())
        if m and m.group(1).strip():
            items.append(m.group(1).strip())
    return tuple(items)


def _parse_text(lines: list[str]) -> str:
    return "\n".join(line.strip() for line in lines if line.strip())


def _parse_enabled(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() not in _DISABLED_VALUES


def _tool_categories(raw: Iterable[Any]) -> tuple[str, ...]:
    return tuple(str(t).strip().lower() for t in raw if str(t).strip())


def parse_job_markdown(text: str, *, job_id: str, path: Path | None = None) -> JobDefinition:
    """Parse a `.job.md` document. Unrecognised sections are ignored."""
    source = path or Path(f"{job_id}.job.md")
    title = ""
    sections: dict[str, list[str]] = {}
    current: str | None = None

    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("# ") and not title:
            title = stripped[2:].strip()
            current = None
            continue
        if stripped.startswith("## "):
            current = _SECTION_ALIASES.get(stripped[3:].strip().lower())
            if current is not None:
                sections.setdefault(current, [])
            continue
        if current is not None:
            sections[current].append(line)

    schedule = _parse_text(sections.get("schedule", []))
    if not schedule:
        raise JobDefinitionError(source, "missing Schedule section")

    enabled_text = _parse_text(sections.get("enabled", []))
    return JobDefinition(
        id=job_id,
        title=title or job_id,
        schedule=schedule,
        goal=_parse_text(sections.get("goal", [])),
        policies=_parse_list(sections.get("policies", [])),
        boundaries=_parse_list(sections.get("boundaries", [])),
        tools=_tool_categories(_parse_list(sections.get("tools", []))),
        file_path=path,
        enabled=_parse_enabled(enabled_text or None),
    )


def _as_str_list(path: Path, key: str, raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise JobDefinitionError(path, f"{key} must be a list")
    return [str(x).strip() for x in raw if str(x).strip()]


def parse_job_yaml(text: str, *, job_id: str, path: Path | None = None) -> JobDefinition:
    source = path or Path(f"{job_id}.job.yaml")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise JobDefinitionError(source, f"failed to parse YAML: {e}") from e
    if not isinstance(data, dict):
        raise JobDefinitionError(source, "invalid YAML root object (expected mapping)")

    schedule = str(data.get("schedule") or "").strip()
    if not schedule:
        raise JobDefinitionError(source, "missing schedule")

    return JobDefinition(
        id=job_id,
        title=str(data.get("title") or job_id).strip(),
        schedule=schedule,
        goal=str(data.get("goal") or "").strip(),
        policies=tuple(_as_str_list(source, "policies", data.get("policies"))),
        boundaries=tuple(_as_str_list(source, "boundaries", data.get("boundaries"))),
        tools=_tool_categories(_as_str_list(source, "tools", data.get("tools"))),
        file_path=path,
        enabled=_parse_enabled(data.get("enabled")),
    )


def load_job_file(path: Path) -> JobDefinition:
    job_id = job_id_for_path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise JobDefinitionError(path, f"cannot read file: {e}") from e
    if path.name.lower().endswith(".job.md"):
        return parse_job_markdown(text, job_id=job_id, path=path)
    return parse_job_yaml(text, job_id=job_id, path=path)


def load_job_definitions(root: Path) -> list[JobDefinition]:
    """Load every job document under root, skipping (and logging) rejected ones."""
    jobs: list[JobDefinition] = []
    for path in iter_job_files(root):
        try:
            jobs.append(load_job_file(path))
        except JobDefinitionError as e:
            logger.warning("job_document_rejected: %s", e, extra={"event": "job_document_rejected", "job_id": path.name})
    return jobs
