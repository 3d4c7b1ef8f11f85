# tests/test_scheduler.py

import asyncio
from datetime import datetime, timezone

import pytest

from tracker.jobs.scheduler import JobScheduler, daily, every, hourly, weekly

NOW = datetime(2025, 3, 12, 14, 35, tzinfo=timezone.utc)  # a Wednesday


def test_hourly_fires_at_the_next_top_of_the_hour() -> None:
    assert hourly()(NOW) == datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


def test_hourly_with_step_waits_for_a_matching_hour() -> None:
    assert hourly(6)(NOW) == datetime(2025, 3, 12, 18, 0, tzinfo=timezone.utc)
    assert hourly(6)(datetime(2025, 3, 12, 23, 10, tzinfo=timezone.utc)) == datetime(
        2025, 3, 13, 0, 0, tzinfo=timezone.utc
    )


def test_daily_rolls_over_once_the_hour_has_passed() -> None:
    assert daily(8)(NOW) == datetime(2025, 3, 13, 8, 0, tzinfo=timezone.utc)
    assert daily(20)(NOW) == datetime(2025, 3, 12, 20, 0, tzinfo=timezone.utc)


def test_weekly_targets_sunday_midnight() -> None:
    assert weekly(6, 0)(NOW) == datetime(2025, 3, 16, 0, 0, tzinfo=timezone.utc)
    sunday_midnight = datetime(2025, 3, 16, 0, 0, tzinfo=timezone.utc)
    assert weekly(6, 0)(sunday_midnight) == datetime(2025, 3, 23, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_failing_run_does_not_stop_later_runs() -> None:
    calls = 0

    async def flaky():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")

    scheduler = JobScheduler()
    scheduler.add_job("flaky", flaky, every(0.01))
    scheduler.start()
    try:
        for _ in range(100):
            if calls >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await scheduler.stop()

    [status] = scheduler.status()
    assert calls >= 3
    assert status["failures"] == 1
    assert status["runs"] >= 3
    assert status["lastError"] is None
    assert not scheduler.running


@pytest.mark.asyncio
async def test_run_once_records_the_error() -> None:
    async def broken():
        raise ValueError("bad data")

    scheduler = JobScheduler()
    scheduler.add_job("broken", broken, hourly(), "always fails")
    await scheduler.run_once("broken")

    [status] = scheduler.status()
    assert status["runs"] == 1
    assert status["failures"] == 1
    assert status["lastError"] == "bad data"
    assert status["description"] == "always fails"


def test_duplicate_job_names_are_rejected() -> None:
    async def noop():
        return None

    scheduler = JobScheduler()
    scheduler.add_job("once", noop, hourly())
    with pytest.raises(ValueError):
        scheduler.add_job("once", noop, hourly())


@pytest.mark.asyncio
async def test_concurrent_runs_of_one_job_never_overlap() -> None:
    active = 0
    peak = 0

    async def sweep():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.05)
        active -= 1
        return "swept"

    scheduler = JobScheduler()
    scheduler.add_job("sweep", sweep, hourly())

    first, second = await asyncio.gather(scheduler.run_once("sweep"), scheduler.run_once("sweep"))

    assert peak == 1
    assert first.result == second.result == "swept"
    [status] = scheduler.status()
    assert status["runs"] == 2
    assert status["running"] is False


@pytest.mark.asyncio
async def test_run_once_returns_the_failure() -> None:
    async def broken():
        raise RuntimeError("store down")

    scheduler = JobScheduler()
    scheduler.add_job("broken", broken, hourly())
    run = await scheduler.run_once("broken")

    assert not run.ok
    assert run.error == "store down"
    assert run.result is None
