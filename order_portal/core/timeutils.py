"""Time helpers shared by the store, order numbering and reporting."""

from datetime import date, datetime, time, timedelta, timezone, tzinfo


def utcnow() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of an instant in the business time zone."""
    return ensure_aware(moment).astimezone(tz).date()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    """Midnight of a calendar day in ``tz``, expressed in UTC."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def day_bounds(moment: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    Half-open ``[midnight, next midnight)`` range around an instant.

    Args:
        moment: Instant inside the day
        tz: Business time zone that defines midnight

    Returns:
        Tuple of UTC datetimes (start inclusive, end exclusive)
    """
    day = local_date(moment, tz)
    return start_of_day(day, tz), start_of_day(day + timedelta(days=1), tz)


def date_range_bounds(
    start: date, end_inclusive: date, tz: tzinfo
) -> tuple[datetime, datetime]:
    """Half-open UTC range covering whole calendar days ``start..end_inclusive``."""
    return start_of_day(start, tz), start_of_day(end_inclusive + timedelta(days=1), tz)
