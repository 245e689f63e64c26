"""Recurrence rule engine for computing next/previous appointment dates."""

import logging
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta

from . import constants
from .errors import InvalidRuleError
from .patterns import resolve_monthly_pattern
from .schema import (
    BiweeklyRule,
    CustomMonthsRule,
    Every3WeeksRule,
    Every4WeeksRule,
    FixedWeeksRule,
    MonthlyPatternRule,
    MonthlyRule,
    RecurrenceRule,
    WeeklyRule,
)
from .types import DAY_NAMES, WEEK_OF_MONTH_NAMES
from .utils import ordinal_suffix, shift_months

logger = logging.getLogger(__name__)

FORWARD = 1
BACKWARD = -1


class RecurrenceEngine:
    """Engine for stepping a date forward or backward along a recurrence rule.

    All computation is on naive calendar dates; the engine holds no state.
    """

    def next_occurrence(
        self,
        rule: RecurrenceRule,
        current: date,
        anchor_day: Optional[int] = None,
    ) -> date:
        """
        Compute the occurrence immediately after ``current``.

        Args:
            rule: Recurrence rule
            current: A date on the rule (typically the last known occurrence)
            anchor_day: Day of month of the family anchor, used by customMonths so
                clamping in a short month does not drift later occurrences
                (Jan 31 -> Apr 30 -> Jul 31). Defaults to current.day.

        Returns:
            Next occurrence date
        """
        next_date = self._step(rule, current, FORWARD, anchor_day)
        logger.debug("next(%s, %s) = %s", rule.type, current, next_date)
        return next_date

    def previous_occurrence(
        self,
        rule: RecurrenceRule,
        current: date,
        anchor_day: Optional[int] = None,
    ) -> date:
        """
        Compute the occurrence immediately before ``current``.

        Mirror image of next_occurrence(); previous(next(d)) == d whenever the
        forward step did not clamp the day of month.
        """
        previous_date = self._step(rule, current, BACKWARD, anchor_day)
        logger.debug("previous(%s, %s) = %s", rule.type, current, previous_date)
        return previous_date

    def upcoming(
        self,
        rule: RecurrenceRule,
        reference_date: date,
        count: int,
        anchor_day: Optional[int] = None,
    ) -> list[date]:
        """Return the next ``count`` occurrences after reference_date."""
        dates = []
        current = reference_date
        for _ in range(count):
            current = self.next_occurrence(rule, current, anchor_day)
            dates.append(current)
        return dates

    def _step(
        self,
        rule: RecurrenceRule,
        current: date,
        direction: int,
        anchor_day: Optional[int],
    ) -> date:
        if isinstance(rule, FixedWeeksRule):
            return current + relativedelta(weeks=direction * rule.weeks)
        if isinstance(rule, MonthlyRule):
            return shift_months(current, direction)
        if isinstance(rule, CustomMonthsRule):
            day = anchor_day if anchor_day is not None else current.day
            return shift_months(current, direction * rule.interval, day=day)
        if isinstance(rule, MonthlyPatternRule):
            return self._step_monthly_pattern(rule, current, direction)
        raise InvalidRuleError(f"Unknown recurrence rule: {rule!r}")

    def _step_monthly_pattern(
        self,
        rule: MonthlyPatternRule,
        current: date,
        direction: int,
    ) -> date:
        """
        Resolve the pattern in the adjacent month.

        The weekday form always resolves. The day-of-month form has no
        occurrence in months lacking that day (dayOfMonth=31 in April), so the
        step moves on to the next month that has it.
        """
        first_of_month = current.replace(day=1)
        for months in range(1, constants.MAX_MONTHS_TO_NEXT_DAY_OF_MONTH + 1):
            target = shift_months(first_of_month, direction * months)
            resolved = resolve_monthly_pattern(rule, target.year, target.month)
            if resolved is not None:
                return resolved
        raise InvalidRuleError(f"monthlyPattern {rule!r} never resolves")


def rule_period_days(rule: RecurrenceRule) -> int:
    """
    Return the minimum number of days between two occurrences of a rule.

    Month-based rules use the shortest month (28 days) per month of interval.
    """
    if isinstance(rule, FixedWeeksRule):
        return rule.weeks * constants.DAYS_PER_WEEK
    if isinstance(rule, CustomMonthsRule):
        return rule.interval * constants.MIN_DAYS_PER_MONTH
    return constants.MIN_DAYS_PER_MONTH


def describe_rule(rule: RecurrenceRule) -> str:
    """
    Format a recurrence rule for display.

    Examples:
        >>> describe_rule(BiweeklyRule())
        'Every 2 weeks'
        >>> describe_rule(MonthlyPatternRule(weekOfMonth=3, dayOfWeek=2))
        'third Tuesday of every month'
    """
    if isinstance(rule, WeeklyRule):
        return "Every week"
    if isinstance(rule, FixedWeeksRule):
        return f"Every {rule.weeks} weeks"
    if isinstance(rule, MonthlyRule):
        return "Every month"
    if isinstance(rule, CustomMonthsRule):
        unit = "month" if rule.interval == 1 else "months"
        return f"Every {rule.interval} {unit}"
    if isinstance(rule, MonthlyPatternRule):
        if rule.is_weekday_form:
            week_name = WEEK_OF_MONTH_NAMES[rule.week_of_month]
            return f"{week_name} {DAY_NAMES[rule.day_of_week]} of every month"
        return f"{rule.day_of_month}{ordinal_suffix(rule.day_of_month)} of every month"
    return "Recurring"


# Legacy single-field frequency values stored before rules were introduced
_LEGACY_FREQUENCIES = {
    "WEEKLY": lambda _months: WeeklyRule(interval=1),
    "BIWEEKLY": lambda _months: BiweeklyRule(interval=2),
    "EVERY3": lambda _months: Every3WeeksRule(interval=3),
    "EVERY4": lambda _months: Every4WeeksRule(interval=4),
    "MONTHLY": lambda _months: MonthlyRule(),
    "CUSTOM": lambda months: CustomMonthsRule(interval=months or 1),
}


def parse_legacy_frequency(frequency: str, months: Optional[int] = None) -> RecurrenceRule:
    """
    Convert a legacy frequency string into a recurrence rule.

    Args:
        frequency: One of WEEKLY, BIWEEKLY, EVERY3, EVERY4, MONTHLY, CUSTOM
        months: Month interval for CUSTOM (defaults to 1)

    Returns:
        Equivalent recurrence rule

    Raises:
        InvalidRuleError: If the frequency is unknown or months is invalid
    """
    factory = _LEGACY_FREQUENCIES.get((frequency or "").upper())
    if factory is None:
        raise InvalidRuleError(f"Unknown legacy frequency: {frequency!r}")
    try:
        return factory(months)
    except ValueError as e:
        raise InvalidRuleError(f"Invalid legacy frequency {frequency!r}: {e}") from e
