"""Tests for the restaurant serving toggle, weekly auto-schedule and midnight auto-stop."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from conftest import call, place_cod
from models.restaurant import Restaurant
from services import serving
from services.errors import BusinessRuleViolation, NotFound, ValidationFailed

# Monday 11 Mar 2024 in IST
MONDAY_11_00_IST = datetime(2024, 3, 11, 5, 30, tzinfo=timezone.utc)
MONDAY_22_30_IST = datetime(2024, 3, 11, 17, 0, tzinfo=timezone.utc)
MONDAY_15_00_IST = datetime(2024, 3, 11, 9, 30, tzinfo=timezone.utc)

SCHEDULE = {"monday": {"open": "11:00", "close": "22:30"}}


async def _restaurant(factory, restaurant_id):
    async with factory() as s:
        return await s.get(Restaurant, restaurant_id)


async def _scheduled(factory, world, is_serving):
    async with factory() as s:
        restaurant = await s.get(Restaurant, world["restaurant_id"])
        restaurant.auto_schedule_enabled = True
        restaurant.weekly_schedule = SCHEDULE
        restaurant.is_serving = is_serving
        await s.commit()


async def test_closed_restaurant_takes_no_orders(session_factory, world, config):
    """Switching serving off blocks checkout; switching it back on allows it."""
    closed = await call(session_factory, serving.set_serving, world["restaurant_id"], False)
    assert closed.is_serving is False
    with pytest.raises(BusinessRuleViolation, match="not accepting orders"):
        await place_cod(session_factory, world, config)

    await call(session_factory, serving.set_serving, world["restaurant_id"], True)
    order = await place_cod(session_factory, world, config)
    assert order.restaurant_id == world["restaurant_id"]


async def test_set_serving_unknown_restaurant(session_factory, world):
    """Toggling a restaurant that doesn't exist is a NotFound."""
    with pytest.raises(NotFound):
        await call(session_factory, serving.set_serving, world["customer_id"], True)


async def test_midnight_auto_stop_switches_everyone_off(session_factory, world):
    """The midnight reset turns off every serving restaurant."""
    assert await call(session_factory, serving.auto_stop_serving) == 1
    assert (await _restaurant(session_factory, world["restaurant_id"])).is_serving is False
    assert await call(session_factory, serving.auto_stop_serving) == 0


@pytest.mark.parametrize("schedule", [
    {"funday": {"open": "10:00", "close": "22:00"}},
    {"monday": {"open": "10:00"}},
    {"monday": {"open": "25:00", "close": "22:00"}},
    {"monday": {"open": "10:00", "close": "10:00"}},
])
def test_invalid_schedules_are_rejected(schedule):
    """Unknown days, half-filled slots, bad times and empty slots fail validation."""
    with pytest.raises(ValidationFailed):
        serving.normalize_schedule(schedule)


def test_schedule_is_normalized():
    """Weekday keys are lower-cased and times zero-padded."""
    assert serving.normalize_schedule({"Monday": {"open": "9:05", "close": "21:00"}}) == {
        "monday": {"open": "09:05", "close": "21:00"},
    }


async def test_enabling_an_empty_schedule_fails(session_factory, world):
    """Auto-schedule needs at least one day with times."""
    with pytest.raises(ValidationFailed):
        await call(session_factory, serving.update_schedule, world["restaurant_id"], True, {})

    saved = await call(session_factory, serving.update_schedule, world["restaurant_id"], True, SCHEDULE)
    assert saved.auto_schedule_enabled is True
    assert saved.weekly_schedule == SCHEDULE


async def test_auto_schedule_opens_and_notifies(session_factory, world):
    """At the opening minute a closed restaurant opens and gets a push."""
    await _scheduled(session_factory, world, is_serving=False)

    push = AsyncMock(return_value=True)
    with patch("services.serving.push_restaurant", push):
        opened, closed = await call(session_factory, serving.apply_auto_schedule, MONDAY_11_00_IST)

    assert opened == [world["restaurant_id"]]
    assert closed == []
    assert (await _restaurant(session_factory, world["restaurant_id"])).is_serving is True
    push.assert_awaited_once()
    assert push.await_args.args[2] == serving.AUTO_OPENED
    assert push.await_args.args[3] == {"type": "AUTO_SCHEDULE_STATUS", "status": "OPEN"}


async def test_auto_schedule_closes_at_closing_minute(session_factory, world):
    """At the closing minute a serving restaurant closes without a push."""
    await _scheduled(session_factory, world, is_serving=True)

    push = AsyncMock(return_value=True)
    with patch("services.serving.push_restaurant", push):
        opened, closed = await call(session_factory, serving.apply_auto_schedule, MONDAY_22_30_IST)

    assert closed == [world["restaurant_id"]]
    assert (await _restaurant(session_factory, world["restaurant_id"])).is_serving is False
    push.assert_not_awaited()


async def test_auto_schedule_ignores_other_minutes_and_disabled(session_factory, world):
    """Outside the open/close minutes, or with the schedule off, nothing changes."""
    await _scheduled(session_factory, world, is_serving=False)
    assert await call(session_factory, serving.apply_auto_schedule, MONDAY_15_00_IST) == ([], [])

    await call(session_factory, serving.update_schedule, world["restaurant_id"], False)
    with patch("services.serving.push_restaurant", AsyncMock()):
        assert await call(session_factory, serving.apply_auto_schedule, MONDAY_11_00_IST) == ([], [])
    assert (await _restaurant(session_factory, world["restaurant_id"])).is_serving is False
