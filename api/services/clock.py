"""Time helpers. Storage is UTC; business calendars use settings.TIMEZONE."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_local(now: datetime | None = None) -> datetime:
    return (now or utcnow()).astimezone(local_tz())


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":", 1)
    return time(int(hours), int(minutes))


def is_after_cutoff(cutoff: str, now: datetime | None = None) -> bool:
    """True once the local wall clock has reached the daily cutoff (e.g. "20:30")."""
    local = now_local(now)
    return local.time().replace(second=0, microsecond=0) >= parse_hhmm(cutoff)


def date_stamp(now: datetime | None = None) -> str:
    """ddmmyyyy of the local calendar day."""
    return now_local(now).strftime("%d%m%Y")
