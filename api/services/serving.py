"""
Restaurant serving lifecycle.

A restaurant only takes orders while is_serving is set. The owner flips it by
hand, the weekly auto-schedule opens and closes it at the configured local
times, and every restaurant is switched off at local midnight.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.restaurant import Restaurant
from services.clock import now_local, parse_hhmm
from services.errors import NotFound, ValidationFailed
from services.outbox_worker import push_restaurant

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

AUTO_OPENED = (
    "🍽️ Auto Schedule Update",
    "Your restaurant is now OPEN according to auto-schedule.",
)


async def _load(session: AsyncSession, restaurant_id: uuid.UUID) -> Restaurant:
    restaurant = await session.get(Restaurant, restaurant_id, populate_existing=True)
    if restaurant is None:
        raise NotFound("Restaurant not found", restaurant_id=str(restaurant_id))
    return restaurant


def _hhmm(value) -> str | None:
    if value in (None, ""):
        return None
    try:
        parsed = parse_hhmm(str(value))
    except ValueError:
        raise ValidationFailed(f"Invalid time {value!r}; use HH:MM")
    return parsed.strftime("%H:%M")


def normalize_schedule(schedule: dict) -> dict:
    """Validate a weekly schedule and return it keyed by lower-case weekday."""
    cleaned = {}
    for day, slot in (schedule or {}).items():
        key = str(day).lower()
        if key not in WEEKDAYS:
            raise ValidationFailed(f"Unknown weekday {day!r}")
        slot = slot or {}
        opens, closes = _hhmm(slot.get("open")), _hhmm(slot.get("close"))
        if (opens is None) != (closes is None):
            raise ValidationFailed(f"{key.title()} needs both an opening and a closing time")
        if opens is not None and opens == closes:
            raise ValidationFailed(f"{key.title()} opens and closes at the same time")
        cleaned[key] = {"open": opens, "close": closes}
    return cleaned


async def set_serving(session: AsyncSession, restaurant_id: uuid.UUID, is_serving: bool) -> Restaurant:
    restaurant = await _load(session, restaurant_id)
    restaurant.is_serving = is_serving
    await session.commit()
    logger.info("Restaurant %s is_serving -> %s", restaurant_id, is_serving)
    return restaurant


async def update_schedule(
    session: AsyncSession,
    restaurant_id: uuid.UUID,
    enabled: bool,
    schedule: dict | None = None,
) -> Restaurant:
    restaurant = await _load(session, restaurant_id)
    if schedule is not None:
        restaurant.weekly_schedule = normalize_schedule(schedule)
    if enabled and not any(slot.get("open") for slot in (restaurant.weekly_schedule or {}).values()):
        raise ValidationFailed("Add at least one day to the schedule before enabling it")
    restaurant.auto_schedule_enabled = enabled
    await session.commit()
    return restaurant


async def auto_stop_serving(session: AsyncSession) -> int:
    """Midnight reset: every serving restaurant stops taking orders."""
    result = await session.execute(
        update(Restaurant)
        .where(Restaurant.is_serving.is_(True))
        .values(is_serving=False)
        .returning(Restaurant.id)
        .execution_options(synchronize_session=False)
    )
    stopped = len(result.scalars().all())
    await session.commit()
    logger.info("Auto-stop: %d restaurants set to not serving", stopped)
    return stopped


async def apply_auto_schedule(session: AsyncSession, now: datetime | None = None) -> tuple[list, list]:
    """
    Open or close auto-scheduled restaurants whose slot starts or ends this minute.

    Matching is on the local HH:MM of `now`, so the loop calling this must tick
    once per minute. Returns (opened ids, closed ids).
    """
    local = now_local(now)
    day, minute = WEEKDAYS[local.weekday()], local.strftime("%H:%M")

    rows = await session.execute(select(Restaurant).where(Restaurant.auto_schedule_enabled.is_(True)))
    opened, closed = [], []
    for restaurant in rows.scalars().all():
        slot = (restaurant.weekly_schedule or {}).get(day) or {}
        if not slot.get("open") or not slot.get("close"):
            continue
        if minute == slot["open"] and not restaurant.is_serving:
            restaurant.is_serving = True
            opened.append(restaurant.id)
        elif minute == slot["close"] and restaurant.is_serving:
            restaurant.is_serving = False
            closed.append(restaurant.id)
    await session.commit()

    for restaurant_id in opened:
        await push_restaurant(
            session, restaurant_id, AUTO_OPENED, {"type": "AUTO_SCHEDULE_STATUS", "status": "OPEN"},
        )
    if opened or closed:
        logger.info("Auto-schedule %s %s: opened %d, closed %d", day, minute, len(opened), len(closed))
    return opened, closed
