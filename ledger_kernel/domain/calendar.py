"""
Calendar-day helpers for ledger aging.

Day counts shown next to debts ("pending since", "paid after") are the
difference between two *local calendar dates*, not elapsed hours divided
by 24. A debt opened at 23:50 and paid at 00:10 the next day is one day
old; one opened at 08:00 and paid at 17:00 the same day is zero days old.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo


def resolve_timezone(name: str) -> tzinfo:
    """Map a configured timezone name to a tzinfo (UTC without tz database)."""
    if name.upper() in ("UTC", "Z", "ETC/UTC"):
        return timezone.utc
    return ZoneInfo(name)


def local_date(moment: datetime | date, tz: tzinfo | None = None) -> date:
    """
    The calendar date of ``moment`` in ``tz``.

    Naive datetimes are taken as already local; plain dates pass through.
    """
    if not isinstance(moment, datetime):
        return moment
    if moment.tzinfo is not None and tz is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def calendar_days_between(
    start: datetime | date,
    end: datetime | date,
    tz: tzinfo | None = None,
) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if end is earlier)."""
    return (local_date(end, tz) - local_date(start, tz)).days


def business_day_start(day: date, hour: int = 8, tz: tzinfo | None = None) -> datetime:
    """
    Anchor a bare date to the start of the business day.

    Work records (hours, production) are entered as dates; the dashboard
    stamps them at a fixed hour so that they sort after midnight postings
    of the same day.
    """
    if not 0 <= hour <= 23:
        raise ValueError(f"business day start hour out of range: {hour}")
    return datetime.combine(day, time(hour=hour), tzinfo=tz)


def as_local(moment: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to a naive datetime; aware datetimes are returned unchanged."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment
