"""Tests for Pydantic schema models."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from recurbook.errors import InvalidRuleError
from recurbook.schema import (
    BiweeklyRule,
    CustomMonthsRule,
    GlobalConfig,
    MonthlyPatternRule,
    MonthlyRule,
    ServiceTemplate,
    WeeklyRule,
    dump_rule,
    parse_rule,
    parse_rule_json,
    rule_to_json,
)
from recurbook.types import AppointmentStatus, RuleType
from tests.conftest import make_appointment, make_family


class TestRuleParsing:
    """Tests for parsing serialized rules into typed variants."""

    @pytest.mark.parametrize(
        "data,expected_class",
        [
            ({"type": "weekly"}, WeeklyRule),
            ({"type": "biweekly", "interval": 2}, BiweeklyRule),
            ({"type": "monthly"}, MonthlyRule),
            ({"type": "customMonths", "interval": 3}, CustomMonthsRule),
            ({"type": "monthlyPattern", "weekOfMonth": 3, "dayOfWeek": 2}, MonthlyPatternRule),
            ({"type": "monthlyPattern", "dayOfMonth": 15}, MonthlyPatternRule),
        ],
    )
    def test_parse_valid_rules(self, data, expected_class):
        """Each valid rule dict parses to its variant."""
        rule = parse_rule(data)
        assert isinstance(rule, expected_class)
        assert rule.rule_type == RuleType(data["type"])

    def test_parse_passes_models_through(self):
        """Already-typed rules are returned unchanged."""
        rule = CustomMonthsRule(interval=2)
        assert parse_rule(rule) is rule

    def test_unknown_type_rejected(self):
        """An unknown rule type is an InvalidRuleError, not a weekly fallback."""
        with pytest.raises(InvalidRuleError):
            parse_rule({"type": "yearly"})

    def test_missing_type_rejected(self):
        with pytest.raises(InvalidRuleError):
            parse_rule({"interval": 2})

    def test_custom_months_requires_interval(self):
        """customMonths without interval is rejected."""
        with pytest.raises(InvalidRuleError, match="interval"):
            parse_rule({"type": "customMonths"})

    def test_custom_months_interval_must_be_positive(self):
        with pytest.raises(InvalidRuleError, match="at least 1"):
            parse_rule({"type": "customMonths", "interval": 0})

    def test_fixed_week_interval_must_match_type(self):
        """A biweekly rule carrying interval 3 is contradictory."""
        with pytest.raises(InvalidRuleError, match="must be 2"):
            parse_rule({"type": "biweekly", "interval": 3})

    def test_extra_fields_rejected(self):
        with pytest.raises(InvalidRuleError):
            parse_rule({"type": "weekly", "dayOfWeek": 1})

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "customMonths", "interval": "3"},
            {"type": "customMonths", "interval": 3.0},
            {"type": "biweekly", "interval": "2"},
            {"type": "monthlyPattern", "weekOfMonth": True, "dayOfWeek": 1},
            {"type": "monthlyPattern", "weekOfMonth": 1, "dayOfWeek": "1"},
            {"type": "monthlyPattern", "dayOfMonth": 15.0},
        ],
    )
    def test_numeric_fields_not_coerced(self, data):
        """Strings, floats and booleans are rejected rather than coerced to integers."""
        with pytest.raises(InvalidRuleError):
            parse_rule(data)

    def test_invalid_rule_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_rule({"type": "monthlyPattern"})


class TestMonthlyPatternValidation:
    """Tests for the two mutually exclusive monthlyPattern forms."""

    def test_requires_one_form(self):
        with pytest.raises(InvalidRuleError, match="requires"):
            parse_rule({"type": "monthlyPattern"})

    def test_rejects_both_forms(self):
        with pytest.raises(InvalidRuleError, match="either"):
            parse_rule(
                {"type": "monthlyPattern", "weekOfMonth": 1, "dayOfWeek": 1, "dayOfMonth": 5}
            )

    def test_rejects_partial_weekday_form(self):
        """weekOfMonth without dayOfWeek is incomplete."""
        with pytest.raises(InvalidRuleError, match="together"):
            parse_rule({"type": "monthlyPattern", "weekOfMonth": 2})

    @pytest.mark.parametrize("week", [0, 5, -2])
    def test_week_of_month_range(self, week):
        with pytest.raises(InvalidRuleError, match="weekOfMonth"):
            parse_rule({"type": "monthlyPattern", "weekOfMonth": week, "dayOfWeek": 1})

    @pytest.mark.parametrize("day", [-1, 7])
    def test_day_of_week_range(self, day):
        with pytest.raises(InvalidRuleError, match="dayOfWeek"):
            parse_rule({"type": "monthlyPattern", "weekOfMonth": 1, "dayOfWeek": day})

    @pytest.mark.parametrize("day", [0, 32])
    def test_day_of_month_range(self, day):
        with pytest.raises(InvalidRuleError, match="dayOfMonth"):
            parse_rule({"type": "monthlyPattern", "dayOfMonth": day})

    def test_last_week_allowed(self):
        rule = parse_rule({"type": "monthlyPattern", "weekOfMonth": -1, "dayOfWeek": 5})
        assert rule.is_weekday_form
        assert rule.week_of_month == -1

    def test_python_names_accepted(self):
        """Snake-case field names work alongside the camelCase aliases."""
        rule = MonthlyPatternRule(week_of_month=2, day_of_week=3)
        assert rule.week_of_month == 2


class TestRuleSerialization:
    """Tests for serializing rules back to their storage form."""

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "weekly"},
            {"type": "every3weeks", "interval": 3},
            {"type": "customMonths", "interval": 6},
            {"type": "monthlyPattern", "weekOfMonth": -1, "dayOfWeek": 0},
            {"type": "monthlyPattern", "dayOfMonth": 31},
        ],
    )
    def test_dump_is_exact_inverse(self, data):
        """Serialized form uses camelCase keys and omits absent fields."""
        assert dump_rule(parse_rule(data)) == data

    def test_json_round_trip(self):
        rule = parse_rule({"type": "monthlyPattern", "weekOfMonth": 3, "dayOfWeek": 2})
        text = rule_to_json(rule)
        assert text == '{"dayOfWeek": 2, "type": "monthlyPattern", "weekOfMonth": 3}'
        assert parse_rule_json(text) == rule

    def test_parse_rule_json_rejects_garbage(self):
        """Unparseable JSON raises instead of falling back to weekly."""
        with pytest.raises(InvalidRuleError, match="not valid JSON"):
            parse_rule_json("{type: weekly")

    def test_rules_are_immutable(self):
        rule = CustomMonthsRule(interval=2)
        with pytest.raises(ValidationError):
            rule.interval = 3


class TestServiceTemplate:
    """Tests for ServiceTemplate model."""

    def test_defaults(self):
        template = ServiceTemplate(address="1 Main St")
        assert template.service_type == "standard"
        assert template.price == Decimal("0")

    def test_address_required(self):
        with pytest.raises(ValidationError):
            ServiceTemplate(price=Decimal("100"))

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError, match="non-negative"):
            ServiceTemplate(address="1 Main St", price=Decimal("-1"))


class TestAppointment:
    """Tests for Appointment model."""

    def test_defaults(self):
        appt = make_appointment(1, date(2026, 11, 2))
        assert appt.status == AppointmentStatus.UNCONFIRMED
        assert appt.time == "09:00"

    @pytest.mark.parametrize("bad_time", ["9:00", "24:00", "12:60", "noon"])
    def test_invalid_time_rejected(self, bad_time):
        with pytest.raises(ValidationError, match="HH:MM"):
            make_appointment(1, date(2026, 11, 2), time=bad_time)


class TestRecurrenceFamily:
    """Tests for derived RecurrenceFamily properties."""

    def test_pending_instance(self):
        family = make_family(
            appointments=[
                make_appointment(1, date(2026, 1, 5), AppointmentStatus.CONFIRMED),
                make_appointment(2, date(2026, 1, 12)),
            ]
        )
        assert family.pending_instance.id == 2
        assert family.next_appointment_date == date(2026, 1, 12)

    def test_reference_date_ignores_superseded_instances(self):
        """Deleted and rescheduled_old instances do not anchor projection."""
        family = make_family(
            anchor_date=date(2026, 1, 5),
            appointments=[
                make_appointment(1, date(2026, 1, 5), AppointmentStatus.CONFIRMED),
                make_appointment(2, date(2026, 1, 19), AppointmentStatus.RESCHEDULED_OLD),
                make_appointment(3, date(2026, 1, 26), AppointmentStatus.DELETED),
            ],
        )
        assert family.reference_date == date(2026, 1, 5)

    def test_reference_date_ignores_rescheduled_new(self):
        """A booking moved off the rule does not become the reference."""
        family = make_family(
            anchor_date=date(2026, 1, 5),
            appointments=[
                make_appointment(1, date(2026, 1, 5), AppointmentStatus.CANCELLED),
                make_appointment(2, date(2026, 1, 12), AppointmentStatus.RESCHEDULED_OLD),
                make_appointment(3, date(2026, 1, 14), AppointmentStatus.RESCHEDULED_NEW),
            ],
        )
        assert family.reference_date == date(2026, 1, 5)

    def test_reference_date_falls_back_to_anchor(self):
        family = make_family(anchor_date=date(2026, 3, 1), appointments=[])
        assert family.reference_date == date(2026, 3, 1)

    def test_last_acted_on(self):
        family = make_family(
            appointments=[
                make_appointment(1, date(2026, 1, 5), AppointmentStatus.CONFIRMED),
                make_appointment(2, date(2026, 1, 12), AppointmentStatus.CANCELLED),
                make_appointment(3, date(2026, 1, 19)),
            ]
        )
        assert family.last_acted_on.id == 2

    def test_existing_dates_exclude_deleted(self):
        family = make_family(
            appointments=[
                make_appointment(1, date(2026, 1, 5), AppointmentStatus.CONFIRMED),
                make_appointment(2, date(2026, 1, 12), AppointmentStatus.DELETED),
            ]
        )
        assert family.existing_dates == {date(2026, 1, 5)}

    def test_anchor_day(self):
        family = make_family(anchor_date=date(2026, 1, 31))
        assert family.anchor_day == 31

    def test_rule_accepts_dict(self):
        family = make_family(rule={"type": "customMonths", "interval": 2})
        assert isinstance(family.rule, CustomMonthsRule)


class TestGlobalConfig:
    """Tests for GlobalConfig model."""

    def test_defaults(self):
        config = GlobalConfig()
        assert config.min_projection_steps == 24
        assert config.max_occurrences_per_month == 10
        assert config.stop_missed_on_sync is True
        assert config.default_time == "09:00"
        assert config.currency == "USD"

    def test_min_projection_steps_floor(self):
        with pytest.raises(ValidationError, match="at least 24"):
            GlobalConfig(min_projection_steps=10)

    def test_max_occurrences_floor(self):
        """A weekly rule can land five times in one month."""
        with pytest.raises(ValidationError, match="at least 5"):
            GlobalConfig(max_occurrences_per_month=4)

    def test_invalid_default_time(self):
        with pytest.raises(ValidationError):
            GlobalConfig(default_time="25:00")
