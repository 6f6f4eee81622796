"""
Background loops started from the app lifespan.

  - weekly settlement: Thursday 00:00 in settings.TIMEZONE
  - expired draft sweep: every DRAFT_SWEEP_SECONDS
  - pending online payment reconciliation: every PAYMENT_RECONCILE_SECONDS
  - restaurant auto-stop: local midnight
  - restaurant auto-schedule: top of every local minute

Each loop exits promptly once the shared stop event is set.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings
from services import payments, serving
from services.clock import local_tz, now_local
from services.notifications import notify_admin
from services.settlement import generate_weekly_settlements, THURSDAY

logger = logging.getLogger(__name__)


def next_settlement_run(now: datetime | None = None) -> datetime:
    """The next Thursday 00:00 local time strictly after now."""
    local = now_local(now)
    midnight = datetime(local.year, local.month, local.day, tzinfo=local_tz())
    days_ahead = (THURSDAY - local.weekday()) % 7
    run_at = midnight + timedelta(days=days_ahead)
    if run_at <= local:
        run_at += timedelta(days=7)
    return run_at


def next_local_midnight(now: datetime | None = None) -> datetime:
    local = now_local(now)
    midnight = datetime(local.year, local.month, local.day, tzinfo=local_tz())
    return midnight + timedelta(days=1)


def seconds_to_next_minute(now: datetime | None = None) -> float:
    local = now_local(now)
    return 60 - local.second - local.microsecond / 1_000_000


async def _sleep(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep up to `seconds`. True if the stop event fired meanwhile."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(seconds, 0))
        return True
    except asyncio.TimeoutError:
        return False


async def settlement_loop(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    while not stop.is_set():
        run_at = next_settlement_run()
        delay = (run_at - now_local()).total_seconds()
        logger.info("Next weekly settlement run at %s", run_at.isoformat())
        if await _sleep(stop, delay):
            break
        try:
            report = await generate_weekly_settlements(session_factory)
            if report.failed:
                await notify_admin(f"⚠️ Weekly settlement finished with {len(report.failed)} failed restaurant(s)")
        except Exception as e:
            logger.exception("Weekly settlement run failed")
            await notify_admin(f"❌ Weekly settlement run failed\nError: {e}")


async def draft_sweep_loop(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    while not await _sleep(stop, settings.DRAFT_SWEEP_SECONDS):
        try:
            async with session_factory() as session:
                await payments.sweep_expired_drafts(session)
        except Exception:
            logger.exception("Draft sweep failed")


async def reconcile_loop(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    while not await _sleep(stop, settings.PAYMENT_RECONCILE_SECONDS):
        try:
            await payments.reconcile_pending_payments(session_factory)
        except Exception:
            logger.exception("Payment reconciliation failed")


async def auto_stop_loop(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    while not stop.is_set():
        delay = (next_local_midnight() - now_local()).total_seconds()
        if await _sleep(stop, delay):
            break
        try:
            async with session_factory() as session:
                await serving.auto_stop_serving(session)
        except Exception:
            logger.exception("Restaurant auto-stop failed")


async def auto_schedule_loop(session_factory: async_sessionmaker, stop: asyncio.Event) -> None:
    # A small offset keeps the tick inside the minute it woke up for
    while not await _sleep(stop, seconds_to_next_minute() + 0.5):
        try:
            async with session_factory() as session:
                await serving.apply_auto_schedule(session)
        except Exception:
            logger.exception("Restaurant auto-schedule failed")
