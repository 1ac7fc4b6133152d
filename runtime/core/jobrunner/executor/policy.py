"""Boundary enforcement and prompt construction for job runs.

Boundaries are free-text hard limits written by the job author ("Never send
emails without approval"). Before any tool call is executed, its name is
checked against the job's boundaries using a fixed table of phrase -> tool
name rules. A match means the call is not executed; it becomes a pending
action awaiting a human decision.

The check is purely local (no I/O) and deterministic.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable

from jobrunner.registry.definition import JobDefinition


@dataclass(frozen=True)
class BoundaryRule:
    name: str
    phrases: tuple[str, ...]
    tool_substrings: tuple[str, ...]

    def matches(self, boundary: str, tool_name: str) -> bool:
        b = boundary.lower()
        t = tool_name.lower()
        return any(p in b for p in self.phrases) and any(s in t for s in self.tool_substrings)


DEFAULT_BOUNDARY_RULES: tuple[BoundaryRule, ...] = (
    BoundaryRule("send", ("never send",), ("draft_reply", "send_email")),
    BoundaryRule("post", ("never post",), ("draft_message", "draft_thread_reply")),
    BoundaryRule("approve", ("never approve", "without approval"), ("approve",)),
    BoundaryRule("merge", ("never merge",), ("merge",)),
    BoundaryRule("delete", ("never delete",), ("delete",)),
    BoundaryRule("unsubscribe", ("never unsubscribe",), ("unsubscribe",)),
)


def check_boundary_violation(
    tool_name: str,
    boundaries: Iterable[str],
    rules: Iterable[BoundaryRule] = DEFAULT_BOUNDARY_RULES,
) -> str | None:
    """Return the violation reason for the first matching boundary, else None."""
    rules = tuple(rules)
    for boundary in boundaries:
        if any(rule.matches(boundary, tool_name) for rule in rules):
            return f"Boundary: {boundary}"
    return None


def describe_call(tool_name: str, arguments: dict[str, Any]) -> str:
    rendered = ", ".join(f"{k}: {json.dumps(v, ensure_ascii=False)}" for k, v in arguments.items())
    return f"{tool_name}({rendered})"


def _bullets(items: Iterable[str]) -> str:
    lines = [f"- {item}" for item in items]
    return "\n".join(lines) if lines else "- (none)"


def build_system_prompt(job: JobDefinition) -> str:
    return (
        "You are an autonomous operations agent executing a scheduled job.\n\n"
        f"## Job: {job.title}\n\n"
        f"## Goal\n{job.goal}\n\n"
        "## Policies (follow these rules)\n"
        f"{_bullets(job.policies)}\n\n"
        "## Boundaries (NEVER violate these)\n"
        f"{_bullets(job.boundaries)}\n\n"
        "## Instructions\n"
        "- Use the available tools to accomplish the goal.\n"
        "- Follow all policies strictly.\n"
        "- NEVER violate any boundary. If an action would cross a boundary, propose it anyway; "
        "it will be held for human approval instead of being executed.\n"
        "- Process all relevant items, then finish with a concise summary of what you did."
    )


def build_seed_message(job: JobDefinition) -> str:
    return (
        f'Execute the "{job.title}" job now. Use the available tools to accomplish the goal. '
        "Process all items and report what you did."
    )
