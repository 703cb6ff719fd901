"""Dashboard period presets resolved to half-open UTC ranges."""

from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import Optional

from order_portal.core.timeutils import date_range_bounds, local_date
from order_portal.services.errors import ValidationFailedError


class Period(str, Enum):
    """Preset reporting periods offered on the admin dashboard."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "thisWeek"
    LAST_WEEK = "lastWeek"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    CUSTOM = "custom"

    @classmethod
    def from_string(cls, value: str) -> "Period":
        try:
            return cls(value)
        except ValueError:
            valid_values = ", ".join(p.value for p in cls)
            raise ValidationFailedError(
                f"Invalid period: {value}. Valid values are: {valid_values}",
                code="INVALID_PERIOD",
                period=value,
            )


def _week_start(day: date) -> date:
    # Weeks start on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def period_dates(
    period: Period, today: date, custom_date: Optional[date] = None
) -> tuple[date, date]:
    """
    Inclusive first and last calendar day of a period.

    ``thisWeek`` and ``thisMonth`` end today. ``custom`` covers
    ``custom_date`` and falls back to today when no date is given.
    """
    if period == Period.TODAY:
        return today, today
    if period == Period.YESTERDAY:
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if period == Period.THIS_WEEK:
        return _week_start(today), today
    if period == Period.LAST_WEEK:
        last_week_end = _week_start(today) - timedelta(days=1)
        return last_week_end - timedelta(days=6), last_week_end
    if period == Period.THIS_MONTH:
        return today.replace(day=1), today
    if period == Period.LAST_MONTH:
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    day = custom_date or today
    return day, day


def resolve_period(
    period: Period,
    now: datetime,
    tz: tzinfo,
    custom_date: Optional[date] = None,
) -> tuple[datetime, datetime]:
    """
    Half-open UTC range ``[start, end)`` for a preset.

    Args:
        period: Preset to resolve
        now: Current instant
        tz: Business time zone defining calendar days
        custom_date: Day used by ``custom``

    Returns:
        Tuple of UTC datetimes
    """
    first, last = period_dates(period, local_date(now, tz), custom_date)
    return date_range_bounds(first, last, tz)
