"""Tests for the recurrence date calculator."""

from datetime import date, timedelta

import pytest

from recurbook.errors import InvalidRuleError
from recurbook.recurrence import (
    RecurrenceEngine,
    describe_rule,
    parse_legacy_frequency,
    rule_period_days,
)
from recurbook.schema import (
    BiweeklyRule,
    CustomMonthsRule,
    Every3WeeksRule,
    Every4WeeksRule,
    MonthlyPatternRule,
    MonthlyRule,
    WeeklyRule,
)


@pytest.fixture
def engine():
    return RecurrenceEngine()


class TestFixedWeekRules:
    """Tests for weekly, biweekly, every3weeks and every4weeks."""

    @pytest.mark.parametrize(
        "rule,days",
        [
            (WeeklyRule(), 7),
            (BiweeklyRule(), 14),
            (Every3WeeksRule(), 21),
            (Every4WeeksRule(), 28),
        ],
    )
    def test_next_and_previous(self, engine, rule, days):
        start = date(2026, 1, 5)
        assert engine.next_occurrence(rule, start) == start + timedelta(days=days)
        assert engine.previous_occurrence(rule, start) == start - timedelta(days=days)

    def test_weekly_crosses_year(self, engine):
        assert engine.next_occurrence(WeeklyRule(), date(2026, 12, 28)) == date(2027, 1, 4)

    def test_upcoming(self, engine):
        dates = engine.upcoming(BiweeklyRule(), date(2026, 1, 5), 3)
        assert dates == [date(2026, 1, 19), date(2026, 2, 2), date(2026, 2, 16)]


class TestMonthlyRule:
    """Tests for the same-day-every-month rule."""

    def test_basic(self, engine):
        assert engine.next_occurrence(MonthlyRule(), date(2026, 1, 15)) == date(2026, 2, 15)
        assert engine.previous_occurrence(MonthlyRule(), date(2026, 1, 15)) == date(2025, 12, 15)

    def test_clamps_to_short_month(self, engine):
        """Jan 31 moves to the last day of February."""
        assert engine.next_occurrence(MonthlyRule(), date(2026, 1, 31)) == date(2026, 2, 28)
        assert engine.next_occurrence(MonthlyRule(), date(2028, 1, 31)) == date(2028, 2, 29)

    def test_previous_clamps(self, engine):
        assert engine.previous_occurrence(MonthlyRule(), date(2026, 3, 31)) == date(2026, 2, 28)


class TestCustomMonthsRule:
    """Tests for every-N-months rules."""

    def test_every_three_months(self, engine):
        rule = CustomMonthsRule(interval=3)
        assert engine.next_occurrence(rule, date(2026, 1, 15)) == date(2026, 4, 15)
        assert engine.previous_occurrence(rule, date(2026, 1, 15)) == date(2025, 10, 15)

    def test_clamps_to_target_month(self, engine):
        rule = CustomMonthsRule(interval=3)
        assert engine.next_occurrence(rule, date(2026, 1, 31), anchor_day=31) == date(2026, 4, 30)

    def test_anchor_day_prevents_drift(self, engine):
        """After clamping to Apr 30 the next step returns to the 31st."""
        rule = CustomMonthsRule(interval=3)
        assert engine.next_occurrence(rule, date(2026, 4, 30), anchor_day=31) == date(2026, 7, 31)
        assert engine.upcoming(rule, date(2026, 1, 31), 4, anchor_day=31) == [
            date(2026, 4, 30),
            date(2026, 7, 31),
            date(2026, 10, 31),
            date(2027, 1, 31),
        ]

    def test_without_anchor_uses_current_day(self, engine):
        rule = CustomMonthsRule(interval=3)
        assert engine.next_occurrence(rule, date(2026, 4, 30)) == date(2026, 7, 30)

    def test_interval_crosses_year(self, engine):
        rule = CustomMonthsRule(interval=6)
        assert engine.next_occurrence(rule, date(2026, 9, 10)) == date(2027, 3, 10)


class TestMonthlyPatternRule:
    """Tests for stepping monthlyPattern rules."""

    def test_first_monday(self, engine):
        rule = MonthlyPatternRule(weekOfMonth=1, dayOfWeek=1)
        assert engine.next_occurrence(rule, date(2026, 3, 2)) == date(2026, 4, 6)
        assert engine.previous_occurrence(rule, date(2026, 3, 2)) == date(2026, 2, 2)

    def test_last_friday(self, engine):
        rule = MonthlyPatternRule(weekOfMonth=-1, dayOfWeek=5)
        assert engine.next_occurrence(rule, date(2026, 1, 30)) == date(2026, 2, 27)

    def test_crosses_year(self, engine):
        rule = MonthlyPatternRule(weekOfMonth=2, dayOfWeek=3)
        assert engine.next_occurrence(rule, date(2026, 12, 9)) == date(2027, 1, 13)

    def test_day_of_month_skips_short_months(self, engine):
        """dayOfMonth=31 has no April occurrence, so March 31 is followed by May 31."""
        rule = MonthlyPatternRule(dayOfMonth=31)
        assert engine.next_occurrence(rule, date(2026, 3, 31)) == date(2026, 5, 31)
        assert engine.previous_occurrence(rule, date(2026, 3, 31)) == date(2026, 1, 31)

    def test_day_of_month_from_off_pattern_date(self, engine):
        """The step resolves in the adjacent month regardless of the current day."""
        rule = MonthlyPatternRule(dayOfMonth=10)
        assert engine.next_occurrence(rule, date(2026, 1, 25)) == date(2026, 2, 10)


class TestInverseLaw:
    """previous(next(d)) == d whenever no clamping happens."""

    @pytest.mark.parametrize(
        "rule",
        [
            WeeklyRule(),
            BiweeklyRule(),
            Every3WeeksRule(),
            Every4WeeksRule(),
            MonthlyRule(),
            CustomMonthsRule(interval=1),
            CustomMonthsRule(interval=5),
        ],
    )
    def test_fixed_and_month_rules(self, engine, rule):
        current = date(2025, 11, 1)
        while current < date(2027, 3, 1):
            if current.day <= 28:
                assert engine.previous_occurrence(rule, engine.next_occurrence(rule, current)) == (
                    current
                )
            current += timedelta(days=3)

    @pytest.mark.parametrize(
        "rule",
        [
            MonthlyPatternRule(weekOfMonth=1, dayOfWeek=1),
            MonthlyPatternRule(weekOfMonth=-1, dayOfWeek=5),
            MonthlyPatternRule(weekOfMonth=4, dayOfWeek=0),
            MonthlyPatternRule(dayOfMonth=31),
        ],
    )
    def test_monthly_pattern_rules(self, engine, rule):
        occurrences = engine.upcoming(rule, date(2025, 12, 31), 18)
        for occurrence in occurrences:
            assert engine.previous_occurrence(rule, engine.next_occurrence(rule, occurrence)) == (
                occurrence
            )


class TestRulePeriod:
    """Tests for minimum rule periods used by iteration bounds."""

    @pytest.mark.parametrize(
        "rule,days",
        [
            (WeeklyRule(), 7),
            (BiweeklyRule(), 14),
            (Every3WeeksRule(), 21),
            (Every4WeeksRule(), 28),
            (MonthlyRule(), 28),
            (CustomMonthsRule(interval=3), 84),
            (MonthlyPatternRule(dayOfMonth=5), 28),
        ],
    )
    def test_period(self, rule, days):
        assert rule_period_days(rule) == days


class TestDescribeRule:
    """Tests for human-readable rule summaries."""

    @pytest.mark.parametrize(
        "rule,text",
        [
            (WeeklyRule(), "Every week"),
            (BiweeklyRule(), "Every 2 weeks"),
            (Every3WeeksRule(), "Every 3 weeks"),
            (MonthlyRule(), "Every month"),
            (CustomMonthsRule(interval=1), "Every 1 month"),
            (CustomMonthsRule(interval=3), "Every 3 months"),
            (MonthlyPatternRule(weekOfMonth=3, dayOfWeek=2), "third Tuesday of every month"),
            (MonthlyPatternRule(weekOfMonth=-1, dayOfWeek=5), "last Friday of every month"),
            (MonthlyPatternRule(dayOfMonth=5), "5th of every month"),
            (MonthlyPatternRule(dayOfMonth=22), "22nd of every month"),
            (MonthlyPatternRule(dayOfMonth=11), "11th of every month"),
        ],
    )
    def test_describe(self, rule, text):
        assert describe_rule(rule) == text


class TestLegacyFrequency:
    """Tests for converting legacy single-field frequencies."""

    @pytest.mark.parametrize(
        "frequency,expected",
        [
            ("WEEKLY", WeeklyRule(interval=1)),
            ("BIWEEKLY", BiweeklyRule(interval=2)),
            ("EVERY3", Every3WeeksRule(interval=3)),
            ("EVERY4", Every4WeeksRule(interval=4)),
            ("MONTHLY", MonthlyRule()),
            ("monthly", MonthlyRule()),
        ],
    )
    def test_known_frequencies(self, frequency, expected):
        assert parse_legacy_frequency(frequency) == expected

    def test_custom_uses_months(self):
        assert parse_legacy_frequency("CUSTOM", 4) == CustomMonthsRule(interval=4)

    def test_custom_defaults_to_one_month(self):
        assert parse_legacy_frequency("CUSTOM") == CustomMonthsRule(interval=1)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(InvalidRuleError, match="Unknown legacy frequency"):
            parse_legacy_frequency("FORTNIGHTLY")

    def test_invalid_custom_months_rejected(self):
        with pytest.raises(InvalidRuleError):
            parse_legacy_frequency("CUSTOM", -2)
