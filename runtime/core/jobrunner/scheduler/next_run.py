"""Advisory next-run estimation for display.

This is not a cron engine. It recognises the common shapes used by job
documents (every N minutes, every N hours, a fixed time on selected weekdays)
and falls back to "top of the next hour" for anything else. The value shown to
operators may disagree with when the timer actually fires for exotic
expressions; the timer is authoritative.

Day-of-week uses crontab numbering: 0 (or 7) is Sunday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from jobrunner.utils import utcnow

EVERY_N_MINUTES = "every-n-minutes"
EVERY_N_HOURS = "every-n-hours"
FIXED_TIME = "fixed-time"
FALLBACK = "fallback"


@dataclass(frozen=True)
class NextRunEstimate:
    at: datetime
    rule: str
    advisory: bool = True


def _step(field: str) -> int | None:
    if not field.startswith("*/"):
        return None
    raw = field[2:]
    if not raw.isdigit() or int(raw) <= 0:
        return None
    return int(raw)


def _cron_weekday(dt: datetime) -> int:
    # datetime: Monday=0..Sunday=6; crontab: Sunday=0..Saturday=6
    return (dt.weekday() + 1) % 7


def parse_day_of_week(field: str) -> set[int]:
    """Expand lists and ranges ("1-5", "0,6", "1-3,5") into crontab weekday numbers."""
    days: set[int] = set()
    for part in field.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo_raw, _, hi_raw = part.partition("-")
            if not (lo_raw.isdigit() and hi_raw.isdigit()):
                continue
            lo, hi = int(lo_raw), int(hi_raw)
            if lo > hi:
                continue
            days.update(d % 7 for d in range(lo, hi + 1) if d <= 7)
        elif part.isdigit() and int(part) <= 7:
            days.add(int(part) % 7)
    return days


def estimate_next_run(schedule: str, now: datetime | None = None) -> NextRunEstimate | None:
    parts = schedule.split()
    if len(parts) < 5:
        return None
    now = now or utcnow()
    minute, hour, _dom, _month, dow = parts[:5]

    hour_step = _step(hour)
    if hour_step is not None:
        base_minute = int(minute) if minute.isdigit() and int(minute) < 60 else 0
        nxt = now.replace(minute=base_minute, second=0, microsecond=0)
        while nxt <= now:
            nxt += timedelta(hours=hour_step)
        return NextRunEstimate(at=nxt, rule=EVERY_N_HOURS)

    minute_step = _step(minute)
    if minute_step is not None:
        top = now.replace(minute=0, second=0, microsecond=0)
        nxt = top + timedelta(minutes=(now.minute // minute_step) * minute_step)
        while nxt <= now:
            nxt += timedelta(minutes=minute_step)
        # Steps restart at the top of each hour.
        nxt = min(nxt, top + timedelta(hours=1))
        return NextRunEstimate(at=nxt, rule=EVERY_N_MINUTES)

    if minute.isdigit() and hour.isdigit() and int(minute) < 60 and int(hour) < 24:
        nxt = now.replace(hour=int(hour), minute=int(minute), second=0, microsecond=0)
        if nxt <= now:
            nxt += timedelta(days=1)
        if dow != "*":
            allowed = parse_day_of_week(dow)
            if allowed:
                for _ in range(7):
                    if _cron_weekday(nxt) in allowed:
                        break
                    nxt += timedelta(days=1)
        return NextRunEstimate(at=nxt, rule=FIXED_TIME)

    return NextRunEstimate(at=now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1), rule=FALLBACK)
