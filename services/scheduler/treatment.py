from __future__ import annotations

from datetime import date, datetime, time, timezone

from .errors import ensure_date_range


def treatment_days(start_date: date, end_date: date) -> int:
    """Number of calendar days in the window, both ends counted."""
    ensure_date_range(start_date, end_date)
    return (end_date - start_date).days + 1


def completion_percentage(start_date: date, end_date: date, now: datetime) -> int:
    """Share of the treatment window already elapsed, 0-100.

    The window runs from midnight of ``start_date`` to midnight of
    ``end_date`` in the timezone of ``now`` (UTC when ``now`` is naive).
    """
    tz = now.tzinfo or timezone.utc
    now = now if now.tzinfo else now.replace(tzinfo=tz)
    start = datetime.combine(start_date, time.min, tzinfo=tz)
    end = datetime.combine(end_date, time.min, tzinfo=tz)

    if now < start:
        return 0
    if now > end:
        return 100

    total = (end - start).total_seconds()
    if total <= 0:
        return 100
    percentage = (now - start).total_seconds() / total * 100
    return max(0, min(100, round(percentage)))
