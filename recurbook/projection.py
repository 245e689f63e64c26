"""Projection of recurrence rules onto a target month.

The projector answers "on which dates of month M does this rule land?" given
a reference date that is known to be an occurrence (the last booked
appointment, or a hypothetical one). It is used two ways:

  - Calendar rendering: pass the dates that already hold a real appointment
    as ``existing_dates`` so projected dates do not duplicate them.
  - Revenue estimation: omit ``existing_dates`` to get the baseline count of
    occurrences regardless of what has been booked.

Every walk toward the target month is bounded by iteration_bound(); running
out of steps yields zero occurrences rather than an error.
"""

import logging
import math
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, NamedTuple, Optional

from . import constants
from .errors import AnchorMissingError
from .patterns import resolve_monthly_pattern
from .recurrence import RecurrenceEngine, rule_period_days
from .schema import CustomMonthsRule, MonthlyPatternRule, RecurrenceRule
from .utils import month_bounds, month_index

if TYPE_CHECKING:
    from .schema import RecurrenceFamily

logger = logging.getLogger(__name__)


class OccurrenceCount(NamedTuple):
    """Occurrences of a rule inside one month."""

    count: int
    dates: list[date]


class FamilyRevenue(NamedTuple):
    """Projected revenue of one family for one month."""

    family_id: int
    occurrences: int
    price: Decimal
    revenue: Decimal


class RevenueProjection(NamedTuple):
    """Projected revenue of a set of families for one month."""

    total: Decimal
    details: list[FamilyRevenue]


def iteration_bound(
    rule: RecurrenceRule,
    reference_date: date,
    month_start: date,
    month_end: date,
    min_steps: int = constants.MIN_PROJECTION_STEPS,
) -> int:
    """
    Maximum number of next/previous steps allowed when walking toward a month.

    The bound is the distance between the reference date and the nearest edge
    of the target month divided by the rule's minimum period, plus a buffer,
    and never less than ``min_steps``. A reference date inside the month is
    measured against the month's length (walking back to its first occurrence).

    Args:
        rule: Recurrence rule being walked
        reference_date: Starting date of the walk
        month_start: First day of the target month
        month_end: Last day of the target month
        min_steps: Floor for the bound

    Returns:
        Step bound
    """
    if reference_date < month_start:
        distance_days = (month_start - reference_date).days
    elif reference_date > month_end:
        distance_days = (reference_date - month_start).days
    else:
        distance_days = (month_end - month_start).days

    steps = math.ceil(distance_days / rule_period_days(rule)) + constants.PROJECTION_STEP_BUFFER
    return max(min_steps, steps)


class OccurrenceProjector:
    """Enumerates the occurrences of a rule inside an arbitrary month."""

    def __init__(
        self,
        engine: Optional[RecurrenceEngine] = None,
        min_steps: int = constants.MIN_PROJECTION_STEPS,
        max_occurrences_per_month: int = constants.MAX_OCCURRENCES_PER_MONTH,
    ):
        self.engine = engine or RecurrenceEngine()
        self.min_steps = min_steps
        self.max_occurrences_per_month = max_occurrences_per_month

    def count_occurrences_in_month(
        self,
        rule: RecurrenceRule,
        reference_date: date,
        target_year: int,
        target_month: int,
        existing_dates: Optional[Iterable[date]] = None,
        anchor_day: Optional[int] = None,
    ) -> OccurrenceCount:
        """
        Find every occurrence of a rule inside the target month.

        Args:
            rule: Recurrence rule
            reference_date: A known occurrence to walk from (may be before,
                inside or after the target month)
            target_year: Year of the month to project onto
            target_month: Month to project onto (1-12)
            existing_dates: Dates that already hold a real appointment; removed
                from the result when given
            anchor_day: Day of month anchoring customMonths arithmetic
                (defaults to reference_date.day)

        Returns:
            OccurrenceCount with the count and the sorted dates
        """
        month_start, month_end = month_bounds(target_year, target_month)

        if isinstance(rule, CustomMonthsRule) and rule.interval > 1:
            dates = self._custom_months_occurrences(
                rule, reference_date, month_start, month_end, anchor_day
            )
        elif isinstance(rule, MonthlyPatternRule):
            resolved = resolve_monthly_pattern(rule, target_year, target_month)
            dates = [resolved] if resolved is not None else []
        else:
            dates = self._stepped_occurrences(
                rule, reference_date, month_start, month_end, anchor_day
            )

        if existing_dates is not None:
            existing = set(existing_dates)
            dates = [d for d in dates if d not in existing]

        return OccurrenceCount(len(dates), dates)

    def project_family(
        self,
        family: "RecurrenceFamily",
        target_year: int,
        target_month: int,
        exclude_existing: bool = False,
    ) -> OccurrenceCount:
        """
        Project a family's rule onto a month from its most recent occurrence.

        Args:
            family: Recurrence family
            target_year: Year of the month to project onto
            target_month: Month to project onto (1-12)
            exclude_existing: Drop dates that already hold one of the family's
                materialized instances (calendar view)

        Raises:
            AnchorMissingError: If the family has no instance and no anchor date
        """
        reference_date = family.reference_date
        if reference_date is None:
            raise AnchorMissingError(f"Family {family.id} has no reference date to project from")

        return self.count_occurrences_in_month(
            family.rule,
            reference_date,
            target_year,
            target_month,
            existing_dates=family.existing_dates if exclude_existing else None,
            anchor_day=family.anchor_day,
        )

    def project_revenue(
        self,
        families: Iterable["RecurrenceFamily"],
        target_year: int,
        target_month: int,
    ) -> RevenueProjection:
        """
        Estimate revenue for a month from recurring families.

        Counts all occurrences of each rule (baseline estimate) without
        excluding dates that already have appointments. Families that cannot
        be anchored are logged and contribute nothing.
        """
        details = []
        total = Decimal("0")

        for family in families:
            try:
                projected = self.project_family(family, target_year, target_month)
            except AnchorMissingError as e:
                logger.warning("Skipping family %s in revenue projection: %s", family.id, e)
                continue

            price = family.template.price
            revenue = price * projected.count
            details.append(FamilyRevenue(family.id, projected.count, price, revenue))
            total += revenue

        return RevenueProjection(total, details)

    def _custom_months_occurrences(
        self,
        rule: CustomMonthsRule,
        reference_date: date,
        month_start: date,
        month_end: date,
        anchor_day: Optional[int],
    ) -> list[date]:
        """
        Walk every-N-months occurrences toward the target month.

        Each step keeps the distance (in months) to the target a multiple of
        the interval or not, so a misaligned distance means the rule never
        lands in the target month.
        """
        if anchor_day is None:
            anchor_day = reference_date.day

        forward = reference_date < month_start
        target_index = month_index(month_start)
        bound = iteration_bound(rule, reference_date, month_start, month_end, self.min_steps)

        candidate = reference_date
        for _ in range(bound):
            months_diff = target_index - month_index(candidate)
            if months_diff % rule.interval != 0:
                return []
            if months_diff == 0:
                return [candidate]
            if (months_diff < 0) == forward:
                # Walked past the target month
                return []

            if forward:
                candidate = self.engine.next_occurrence(rule, candidate, anchor_day)
            else:
                candidate = self.engine.previous_occurrence(rule, candidate, anchor_day)

        logger.debug(
            "Iteration bound %d reached projecting %s from %s onto %s",
            bound,
            rule.type,
            reference_date,
            month_start,
        )
        return []

    def _stepped_occurrences(
        self,
        rule: RecurrenceRule,
        reference_date: date,
        month_start: date,
        month_end: date,
        anchor_day: Optional[int],
    ) -> list[date]:
        """Find the first occurrence inside the month, then enumerate forward."""
        first = self._first_occurrence_in_month(
            rule, reference_date, month_start, month_end, anchor_day
        )
        if first is None:
            return []

        dates = []
        current = first
        for _ in range(self.max_occurrences_per_month):
            if current > month_end:
                break
            dates.append(current)
            current = self.engine.next_occurrence(rule, current, anchor_day)
        return dates

    def _first_occurrence_in_month(
        self,
        rule: RecurrenceRule,
        reference_date: date,
        month_start: date,
        month_end: date,
        anchor_day: Optional[int],
    ) -> Optional[date]:
        bound = iteration_bound(rule, reference_date, month_start, month_end, self.min_steps)
        current = reference_date

        if reference_date < month_start:
            steps = 0
            while current < month_start and steps < bound:
                current = self.engine.next_occurrence(rule, current, anchor_day)
                steps += 1
        else:
            reached_month_start = False
            for _ in range(bound):
                previous = self.engine.previous_occurrence(rule, current, anchor_day)
                if previous < month_start:
                    reached_month_start = True
                    break
                current = previous
            if not reached_month_start:
                logger.debug(
                    "Iteration bound %d reached walking %s back from %s to %s",
                    bound,
                    rule.type,
                    reference_date,
                    month_start,
                )
                return None

        if month_start <= current <= month_end:
            return current
        return None


_default_projector = OccurrenceProjector()


def count_occurrences_in_month(
    rule: RecurrenceRule,
    reference_date: date,
    target_year: int,
    target_month: int,
    existing_dates: Optional[Iterable[date]] = None,
    anchor_day: Optional[int] = None,
) -> OccurrenceCount:
    """Module-level shortcut for OccurrenceProjector().count_occurrences_in_month()."""
    return _default_projector.count_occurrences_in_month(
        rule,
        reference_date,
        target_year,
        target_month,
        existing_dates=existing_dates,
        anchor_day=anchor_day,
    )
