"""Timezone-aware date/time helpers for the booking rules."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from roombook.config import ORGANIZATION_TIMEZONE


def get_timezone() -> ZoneInfo:
    """Get the organization timezone."""
    return ZoneInfo(ORGANIZATION_TIMEZONE)


def get_now() -> datetime:
    """Get the current instant in UTC."""
    return datetime.now(timezone.utc)


def get_today() -> date:
    """Get today's date in the organization timezone."""
    return datetime.now(get_timezone()).date()


def ensure_aware(value: datetime) -> datetime:
    """Attach the organization timezone to naive datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=get_timezone())
    return value


def to_local(value: datetime) -> datetime:
    return ensure_aware(value).astimezone(get_timezone())
