from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from .config import settings

UTC = dt.timezone.utc
LOCAL_TZ = ZoneInfo(settings.timezone)

MS_PER_HOUR = 3_600_000


def utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Normalize a timestamp to aware UTC; naive values are read as UTC (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """Normalize user input; naive values are read in the configured local timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=LOCAL_TZ)
    return value.astimezone(UTC)


def local_date(value: dt.datetime) -> dt.date:
    return as_utc(value).astimezone(LOCAL_TZ).date()


def round_half_up(value: float, places: int = 0) -> float:
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    return round_half_up(value, 2)


def elapsed_ms(start: dt.datetime, end: dt.datetime) -> int:
    return (as_utc(end) - as_utc(start)) // dt.timedelta(milliseconds=1)


def ms_to_hours(milliseconds: float) -> float:
    """Convert milliseconds to hours rounded to 2 decimals, clamped at zero."""
    return round2(max(milliseconds, 0) / MS_PER_HOUR)
