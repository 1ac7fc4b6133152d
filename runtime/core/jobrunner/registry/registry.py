"""Job source registry.

Holds the jobs directory and a fingerprint of its job documents so callers can
cheaply ask "did anything change?" on a polling interval. Any add, edit or
delete of a job document changes the fingerprint.
"""

from __future__ import annotations

import logging
from pathlib import Path

from jobrunner.registry.definition import JobDefinition
from jobrunner.registry.loader import iter_job_files, load_job_definitions

logger = logging.getLogger(__name__)

Fingerprint = tuple[tuple[str, int, int], ...]


def fingerprint_dir(root: Path) -> Fingerprint:
    entries: list[tuple[str, int, int]] = []
    for p in iter_job_files(root):
        try:
            st = p.stat()
        except FileNotFoundError:
            # Deleted between listing and stat.
            continue
        entries.append((p.name, st.st_mtime_ns, st.st_size))
    return tuple(entries)


class JobRegistry:
    def __init__(self, jobs_dir: Path):
        self.jobs_dir = jobs_dir
        self._fingerprint: Fingerprint | None = None

    def load(self) -> list[JobDefinition]:
        self._fingerprint = fingerprint_dir(self.jobs_dir)
        jobs = load_job_definitions(self.jobs_dir)
        logger.info("job_documents_loaded count=%d", len(jobs), extra={"event": "job_documents_loaded"})
        return jobs

    def has_changed(self) -> bool:
        return fingerprint_dir(self.jobs_dir) != self._fingerprint

    def reload_if_changed(self) -> list[JobDefinition] | None:
        if not self.has_changed():
            return None
        return self.load()
