"""In-memory job definition record."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class JobDefinition:
    id: str
    title: str
    schedule: str
    goal: str
    policies: tuple[str, ...] = ()
    boundaries: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    file_path: Path | None = None
    enabled: bool = True
