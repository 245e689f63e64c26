"""Resolution of monthlyPattern rules to a concrete date in a given month."""

import logging
from datetime import date
from typing import Optional

from . import constants
from .schema import MonthlyPatternRule
from .utils import days_in_month, wire_weekday

logger = logging.getLogger(__name__)


def resolve_nth_weekday(
    year: int, month: int, week_of_month: int, day_of_week: int
) -> Optional[date]:
    """
    Find the Nth (or last) given weekday in a month.

    Args:
        year: Target year
        month: Target month (1-12)
        week_of_month: 1-4 for first..fourth, -1 for last
        day_of_week: 0 (Sunday) to 6 (Saturday)

    Returns:
        The matching date, or None if that day does not exist in the month

    Example:
        >>> resolve_nth_weekday(2026, 3, 1, 1)  # first Monday of March 2026
        datetime.date(2026, 3, 2)
    """
    first_day_of_week = wire_weekday(date(year, month, 1))
    target_day = 1 + (day_of_week - first_day_of_week + constants.DAYS_PER_WEEK) % 7

    last_day = days_in_month(year, month)
    if week_of_month > 0:
        target_day += (week_of_month - 1) * constants.DAYS_PER_WEEK
    else:
        # Last occurrence: step back from the final day of the month
        last_day_of_week = wire_weekday(date(year, month, last_day))
        days_from_last = (last_day_of_week - day_of_week + constants.DAYS_PER_WEEK) % 7
        target_day = last_day - days_from_last

    if target_day < 1 or target_day > last_day:
        return None
    return date(year, month, target_day)


def resolve_day_of_month(year: int, month: int, day_of_month: int) -> Optional[date]:
    """Return (year, month, day_of_month) if that day exists, else None (no clamping)."""
    if day_of_month > days_in_month(year, month):
        return None
    return date(year, month, day_of_month)


def resolve_monthly_pattern(rule: MonthlyPatternRule, year: int, month: int) -> Optional[date]:
    """
    Resolve a monthlyPattern rule to its occurrence in one month.

    Args:
        rule: monthlyPattern rule (weekday form or day-of-month form)
        year: Target year
        month: Target month (1-12)

    Returns:
        Occurrence date, or None when the month has no such day
        (e.g. dayOfMonth=31 in April). Callers must check for None.
    """
    if rule.is_weekday_form:
        resolved = resolve_nth_weekday(year, month, rule.week_of_month, rule.day_of_week)
    else:
        resolved = resolve_day_of_month(year, month, rule.day_of_month)

    if resolved is None:
        logger.debug("monthlyPattern %s has no occurrence in %04d-%02d", rule, year, month)
    return resolved
