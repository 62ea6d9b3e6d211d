# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for CourseDesk.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware, so naive/aware mixing never happens.

Usage:
    from coursedesk.utils.datetime import utc_now

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None. Naive values are assumed UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def days_ago(days: int) -> datetime:
    """Get the UTC datetime `days` days before now."""
    return utc_now() - timedelta(days=days)


def year_in_zone(dt: datetime, tz_name: str) -> int:
    """Get the calendar year of an instant as seen from a time zone.

    Args:
        dt: The instant (naive values are assumed UTC).
        tz_name: IANA time zone name, e.g. "America/Lima".

    Returns:
        Four digit calendar year.
    """
    aware = ensure_utc(dt)
    assert aware is not None
    return aware.astimezone(ZoneInfo(tz_name)).year


def parse_iso_date(value: str | date | datetime | None) -> date | None:
    """Parse an ISO date or datetime string into a date.

    Accepts "2025-03-01" as well as full timestamps such as
    "2025-03-01T10:00:00Z"; the date part of a timestamp is taken in UTC.

    Args:
        value: ISO string, date, datetime or None.

    Returns:
        The date, or None when value is None or empty.

    Raises:
        ValueError: If the string is not an ISO date or datetime.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).date()  # type: ignore[union-attr]
    if isinstance(value, date):
        return value

    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return ensure_utc(parsed).date()  # type: ignore[union-attr]
