"""Tests for background loop timing."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import asyncio
from datetime import datetime, timezone

from services.scheduler import next_settlement_run, next_local_midnight, seconds_to_next_minute, _sleep


def test_next_run_from_midweek():
    """From midweek the next run is the coming Thursday midnight."""
    # Monday 11 Mar 2024, 15:00 IST -> Thursday 14 Mar 00:00 IST
    run_at = next_settlement_run(datetime(2024, 3, 11, 9, 30, tzinfo=timezone.utc))
    assert run_at.astimezone(timezone.utc) == datetime(2024, 3, 13, 18, 30, tzinfo=timezone.utc)


def test_next_run_is_strictly_in_the_future():
    """A run exactly at Thursday midnight schedules the next week."""
    # Exactly Thursday 00:00 IST
    run_at = next_settlement_run(datetime(2024, 3, 13, 18, 30, tzinfo=timezone.utc))
    assert run_at.astimezone(timezone.utc) == datetime(2024, 3, 20, 18, 30, tzinfo=timezone.utc)


def test_next_run_on_thursday_morning_waits_a_week():
    """Thursday morning waits for the following Thursday."""
    run_at = next_settlement_run(datetime(2024, 3, 14, 4, 30, tzinfo=timezone.utc))
    assert run_at.astimezone(timezone.utc) == datetime(2024, 3, 20, 18, 30, tzinfo=timezone.utc)


async def test_sleep_returns_early_when_stopped():
    """A set stop event ends the sleep immediately."""
    stop = asyncio.Event()
    stop.set()
    assert await _sleep(stop, 60) is True


async def test_sleep_times_out():
    assert await _sleep(asyncio.Event(), 0.01) is False


def test_auto_stop_runs_at_next_local_midnight():
    """23:59 IST on the 11th -> 00:00 IST on the 12th."""
    run_at = next_local_midnight(datetime(2024, 3, 11, 18, 29, tzinfo=timezone.utc))
    assert run_at.astimezone(timezone.utc) == datetime(2024, 3, 11, 18, 30, tzinfo=timezone.utc)


def test_auto_stop_at_midnight_waits_a_full_day():
    """Exactly midnight IST schedules the following midnight."""
    run_at = next_local_midnight(datetime(2024, 3, 11, 18, 30, tzinfo=timezone.utc))
    assert run_at.astimezone(timezone.utc) == datetime(2024, 3, 12, 18, 30, tzinfo=timezone.utc)


def test_schedule_tick_aligns_to_minute():
    """Auto-schedule wakes at the top of the next minute."""
    assert seconds_to_next_minute(datetime(2024, 3, 11, 5, 30, 45, 500000, tzinfo=timezone.utc)) == 14.5
    assert seconds_to_next_minute(datetime(2024, 3, 11, 5, 30, tzinfo=timezone.utc)) == 60
