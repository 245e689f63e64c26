"""Utility functions for recurbook.

Small calendar helpers shared by the pattern resolver, the date calculator,
the projector and the CLI:

1. Month arithmetic
   - Month boundaries and running month indexes
   - Shifting a date by whole months with day-of-month clamping

2. Weekday conversion
   - Python numbers Monday as 0; the serialized rule format numbers Sunday as 0

3. Validation and display
   - HH:MM times coming from YAML, JSON or the command line
   - English ordinal suffixes for rule summaries
"""

import calendar
import re
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta

from . import constants


def days_in_month(year: int, month: int) -> int:
    """Return the number of days in the given month."""
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last date of a month.

    Raises:
        ValueError: If month is outside 1-12.
    """
    if month < 1 or month > constants.MONTHS_PER_YEAR:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def month_index(d: date) -> int:
    """Return a running month number (year * 12 + month - 1) for distance math."""
    return d.year * constants.MONTHS_PER_YEAR + d.month - 1


def shift_months(d: date, months: int, day: Optional[int] = None) -> date:
    """Shift a date by whole months, keeping (or setting) the day of month.

    relativedelta clamps an absolute day to the target month's length, so
    Jan 31 + 1 month is Feb 28 (or 29) and ``day=31`` in April gives Apr 30.

    Args:
        d: Date to shift
        months: Number of months (negative moves backward)
        day: Day of month to land on; defaults to d.day

    Returns:
        Shifted date, clamped to the last valid day of the target month
    """
    return d + relativedelta(months=months, day=day if day is not None else d.day)


def wire_weekday(d: date) -> int:
    """Return the weekday of d in the serialized numbering (0 = Sunday)."""
    return (d.weekday() + 1) % constants.DAYS_PER_WEEK


def validate_time(value: str) -> str:
    """Ensure a time string is HH:MM in 24-hour format.

    Raises:
        ValueError: If the value does not match.
    """
    if not isinstance(value, str) or not re.match(constants.TIME_PATTERN, value):
        raise ValueError(f"Invalid time '{value}'. Use HH:MM (24-hour format)")
    return value


def ordinal_suffix(n: int) -> str:
    """Return the English ordinal suffix for n (st, nd, rd, th)."""
    if n % 100 in (11, 12, 13):
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
