from __future__ import annotations

from datetime import datetime, timezone

import pytest

from jobrunner.scheduler.next_run import (
    EVERY_N_HOURS,
    EVERY_N_MINUTES,
    FALLBACK,
    FIXED_TIME,
    estimate_next_run,
    parse_day_of_week,
)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    # October 2026: the 16th is a Friday.
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "schedule, now, expected, rule",
    [
        ("0 9 * * 1-5", _at(16, 10), _at(19, 9), FIXED_TIME),
        ("0 9 * * 1-5", _at(17, 8), _at(19, 9), FIXED_TIME),
        ("0 9 * * 1-5", _at(16, 8), _at(16, 9), FIXED_TIME),
        ("30 8 * * *", _at(16, 9), _at(17, 8, 30), FIXED_TIME),
        ("0 9 * * 0,6", _at(16, 10), _at(17, 9), FIXED_TIME),
        ("0 9 * * 7", _at(16, 10), _at(18, 9), FIXED_TIME),
        ("*/15 * * * *", _at(16, 10, 7), _at(16, 10, 15), EVERY_N_MINUTES),
        ("*/15 * * * *", _at(16, 10, 50), _at(16, 11), EVERY_N_MINUTES),
        ("*/25 * * * *", _at(16, 10, 52), _at(16, 11), EVERY_N_MINUTES),
        ("0 */2 * * *", _at(16, 10, 30), _at(16, 12), EVERY_N_HOURS),
        ("0 9,17 * * *", _at(16, 10, 20), _at(16, 11), FALLBACK),
    ],
)
def test_estimates(schedule, now, expected, rule) -> None:
    estimate = estimate_next_run(schedule, now=now)
    assert estimate is not None
    assert estimate.at == expected
    assert estimate.rule == rule
    assert estimate.advisory is True


def test_estimate_is_strictly_in_the_future() -> None:
    estimate = estimate_next_run("0 9 * * *", now=_at(16, 9))
    assert estimate.at == _at(17, 9)


@pytest.mark.parametrize("schedule", ["", "0 9 * *", "every morning"])
def test_short_expressions_have_no_estimate(schedule) -> None:
    assert estimate_next_run(schedule, now=_at(16, 10)) is None


def test_day_of_week_lists_and_ranges() -> None:
    assert parse_day_of_week("1-5") == {1, 2, 3, 4, 5}
    assert parse_day_of_week("0,7") == {0}
    assert parse_day_of_week("1-3,5") == {1, 2, 3, 5}
    assert parse_day_of_week("mon-fri") == set()
