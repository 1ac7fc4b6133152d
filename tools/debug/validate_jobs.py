#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def main(argv: list[str]) -> int:
    repo = _repo_root()
    sys.path.insert(0, str(repo / "runtime" / "core"))

    from jobrunner.errors import JobDefinitionError
    from jobrunner.registry.loader import iter_job_files, load_job_file
    from jobrunner.scheduler.next_run import estimate_next_run
    from jobrunner.scheduler.runner import is_valid_schedule

    jobs_dir = Path(argv[1]) if len(argv) > 1 else repo / "jobs"
    files = list(iter_job_files(jobs_dir))
    if not files:
        print(f"jobs_dir={jobs_dir} documents=0")
        return 0

    rejected = 0
    for path in files:
        try:
            job = load_job_file(path)
        except JobDefinitionError as e:
            rejected += 1
            print(f"{path.name}: REJECTED reason={e}")
            continue

        registrable = is_valid_schedule(job.schedule)
        estimate = estimate_next_run(job.schedule)
        next_run = estimate.at.isoformat() if estimate else "-"
        print(
            f"{path.name}: id={job.id} enabled={job.enabled} schedule={job.schedule!r} "
            f"timer={'yes' if registrable else 'no'} tools={','.join(job.tools) or '-'} next_run~{next_run}"
        )

    print(f"jobs_dir={jobs_dir} documents={len(files)} rejected={rejected}")
    return 1 if rejected else 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
