"""Pydantic schema models for recurrence rules, families and appointments."""

import datetime
import json
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from . import constants
from .errors import InvalidRuleError
from .types import WEEKS_BY_RULE_TYPE, AppointmentStatus, FamilyStatus, RuleType
from .utils import validate_time

# ============================================================================
# Recurrence rules
# ============================================================================


class _RuleBase(BaseModel):
    """Common configuration for rule variants.

    Rules are immutable values; the serialized form uses camelCase keys.
    Numeric fields are strict: "3", 3.0 and booleans are rejected, not coerced.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @property
    def rule_type(self) -> RuleType:
        """Return the rule kind as an enum."""
        return RuleType(self.type)


class FixedWeeksRule(_RuleBase):
    """Every N weeks from the anchor date."""

    interval: Optional[StrictInt] = Field(
        None,
        description="Informational week count carried by legacy data; must match the type",
    )

    @property
    def weeks(self) -> int:
        return WEEKS_BY_RULE_TYPE[self.rule_type]

    @model_validator(mode="after")
    def validate_interval_matches_type(self) -> "FixedWeeksRule":
        """Ensure an explicit interval agrees with the rule type."""
        if self.interval is not None and self.interval != self.weeks:
            msg = f"interval for {self.type} must be {self.weeks}, got {self.interval}"
            raise ValueError(msg)
        return self


class WeeklyRule(FixedWeeksRule):
    type: Literal["weekly"] = "weekly"


class BiweeklyRule(FixedWeeksRule):
    type: Literal["biweekly"] = "biweekly"


class Every3WeeksRule(FixedWeeksRule):
    type: Literal["every3weeks"] = "every3weeks"


class Every4WeeksRule(FixedWeeksRule):
    type: Literal["every4weeks"] = "every4weeks"


class MonthlyRule(_RuleBase):
    """Same day of month every month (clamped to short months)."""

    type: Literal["monthly"] = "monthly"


class CustomMonthsRule(_RuleBase):
    """Every N months, keeping the anchor day of month."""

    type: Literal["customMonths"] = "customMonths"
    interval: StrictInt = Field(..., description="Number of months between occurrences")

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Ensure interval is positive."""
        if v < constants.MIN_INTERVAL:
            raise ValueError("interval must be at least 1")
        return v


class MonthlyPatternRule(_RuleBase):
    """Nth (or last) weekday of the month, or a fixed day of the month.

    Exactly one form must be given:
        - weekOfMonth (1-4 or -1 for last) together with dayOfWeek (0=Sunday..6)
        - dayOfMonth (1-31)
    """

    type: Literal["monthlyPattern"] = "monthlyPattern"
    week_of_month: Optional[StrictInt] = Field(None, alias="weekOfMonth")
    day_of_week: Optional[StrictInt] = Field(None, alias="dayOfWeek")
    day_of_month: Optional[StrictInt] = Field(None, alias="dayOfMonth")

    @field_validator("week_of_month")
    @classmethod
    def validate_week_of_month(cls, v: Optional[int]) -> Optional[int]:
        """Ensure weekOfMonth is 1-4 or -1 (for last)."""
        if v is not None and v not in constants.VALID_WEEKS_OF_MONTH:
            raise ValueError("weekOfMonth must be 1-4 or -1 (for last)")
        return v

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, v: Optional[int]) -> Optional[int]:
        """Ensure dayOfWeek is 0 (Sunday) to 6 (Saturday)."""
        if v is not None and (v < constants.MIN_DAY_OF_WEEK or v > constants.MAX_DAY_OF_WEEK):
            raise ValueError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("day_of_month")
    @classmethod
    def validate_day_of_month(cls, v: Optional[int]) -> Optional[int]:
        """Ensure dayOfMonth is in valid range."""
        if v is not None and (v < constants.MIN_DAY_OF_MONTH or v > constants.MAX_DAY_OF_MONTH):
            msg = (
                f"dayOfMonth must be between {constants.MIN_DAY_OF_MONTH} "
                f"and {constants.MAX_DAY_OF_MONTH}"
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_single_form(self) -> "MonthlyPatternRule":
        """Require exactly one of the weekday form and the day-of-month form."""
        weekday_fields = (self.week_of_month, self.day_of_week)
        has_weekday_form = all(f is not None for f in weekday_fields)
        has_partial_weekday_form = any(f is not None for f in weekday_fields)

        if has_partial_weekday_form and not has_weekday_form:
            raise ValueError("weekOfMonth and dayOfWeek must be given together")
        if has_weekday_form and self.day_of_month is not None:
            raise ValueError("monthlyPattern takes either weekOfMonth/dayOfWeek or dayOfMonth")
        if not has_weekday_form and self.day_of_month is None:
            raise ValueError("monthlyPattern requires weekOfMonth/dayOfWeek or dayOfMonth")
        return self

    @property
    def is_weekday_form(self) -> bool:
        return self.week_of_month is not None


RecurrenceRule = Annotated[
    Union[
        WeeklyRule,
        BiweeklyRule,
        Every3WeeksRule,
        Every4WeeksRule,
        MonthlyRule,
        CustomMonthsRule,
        MonthlyPatternRule,
    ],
    Field(discriminator="type"),
]

_rule_adapter = TypeAdapter(RecurrenceRule)


def parse_rule(data: Any) -> RecurrenceRule:
    """
    Validate a serialized rule into its typed variant.

    Args:
        data: Rule dict ({"type": ..., "interval"?, "dayOfWeek"?, ...}) or a rule model

    Returns:
        The matching rule variant

    Raises:
        InvalidRuleError: If the type is unknown or required fields are missing/invalid
    """
    if isinstance(data, _RuleBase):
        return data
    try:
        return _rule_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidRuleError(f"Invalid recurrence rule {data!r}: {e}") from e


def dump_rule(rule: RecurrenceRule) -> dict[str, Any]:
    """Serialize a rule to its storage/wire dict (camelCase, absent fields omitted)."""
    return rule.model_dump(by_alias=True, exclude_none=True)


def rule_to_json(rule: RecurrenceRule) -> str:
    """Serialize a rule to a JSON string for storage."""
    return json.dumps(dump_rule(rule), sort_keys=True)


def parse_rule_json(text: str) -> RecurrenceRule:
    """Parse a JSON string back to a rule.

    Raises:
        InvalidRuleError: If the text is not JSON or not a valid rule
    """
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise InvalidRuleError(f"Recurrence rule is not valid JSON: {text!r}") from e
    return parse_rule(data)


# ============================================================================
# Families and appointments
# ============================================================================


class ServiceTemplate(BaseModel):
    """Snapshot of the booked service carried into every generated instance."""

    template_id: Optional[int] = Field(None, description="Source appointment template id")
    service_type: str = Field("standard", description="Service type (e.g. standard, deep)")
    size: Optional[str] = Field(None, description="Property size description")
    address: str = Field(..., description="Service address")
    city_state_zip: Optional[str] = Field(None, description="City, state and ZIP")
    price: Decimal = Field(constants.ZERO_PRICE, description="Price per occurrence")
    notes: Optional[str] = Field(None, description="Notes copied into each instance")

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        """Ensure price is non-negative."""
        if v < 0:
            raise ValueError("price must be non-negative")
        return v


class Appointment(BaseModel):
    """A materialized appointment instance."""

    id: int = Field(..., description="Appointment id")
    family_id: Optional[int] = Field(None, description="Owning recurrence family")
    client_id: Optional[int] = Field(None, description="Client id")
    date: datetime.date = Field(..., description="Appointment date")
    time: str = Field(constants.DEFAULT_TIME, description="Start time (HH:MM)")
    price: Decimal = Field(constants.ZERO_PRICE, description="Price")
    address: Optional[str] = Field(None, description="Service address")
    status: AppointmentStatus = Field(AppointmentStatus.UNCONFIRMED, description="Status")
    notes: Optional[str] = Field(None, description="Free-form notes and move log")

    @field_validator("time")
    @classmethod
    def validate_time_format(cls, v: str) -> str:
        return validate_time(v)


# Instance statuses whose dates fall on the family rule
_ON_RULE_STATUSES = frozenset(
    {
        AppointmentStatus.UNCONFIRMED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
    }
)


class RecurrenceFamily(BaseModel):
    """A repeating booking and every instance it has generated."""

    id: int = Field(..., description="Family id")
    status: FamilyStatus = Field(FamilyStatus.ACTIVE, description="active or stopped")
    rule: RecurrenceRule = Field(..., description="Recurrence rule")
    template: ServiceTemplate = Field(..., description="Service snapshot")
    client_id: Optional[int] = Field(None, description="Client id")
    admin_id: Optional[int] = Field(None, description="Admin who booked the family")
    time: str = Field(constants.DEFAULT_TIME, description="Time used for generated instances")
    anchor_date: Optional[datetime.date] = Field(
        None, description="Date whose day-of-month anchors month arithmetic"
    )
    next_appointment_date: Optional[datetime.date] = Field(
        None, description="Date of the pending instance"
    )
    created_on: Optional[datetime.date] = Field(None, description="Creation date")
    appointments: list[Appointment] = Field(default_factory=list, description="Instances")

    @field_validator("time")
    @classmethod
    def validate_time_format(cls, v: str) -> str:
        return validate_time(v)

    @property
    def is_active(self) -> bool:
        return self.status == FamilyStatus.ACTIVE

    @property
    def anchor_day(self) -> Optional[int]:
        return self.anchor_date.day if self.anchor_date else None

    @property
    def pending_instance(self) -> Optional[Appointment]:
        """Return the family's unconfirmed instance, if any."""
        return next(
            (a for a in self.appointments if a.status == AppointmentStatus.UNCONFIRMED),
            None,
        )

    @property
    def reference_date(self) -> Optional[datetime.date]:
        """
        Return the most recent known occurrence date.

        Only instances that sit on the rule count: unconfirmed, confirmed,
        cancelled and completed ones. A rescheduled_new instance was moved off
        the rule and is ignored. The anchor date always counts, and is the
        answer when no instance qualifies.
        """
        dates = [a.date for a in self.appointments if a.status in _ON_RULE_STATUSES]
        if self.anchor_date is not None:
            dates.append(self.anchor_date)
        return max(dates) if dates else None

    @property
    def existing_dates(self) -> set[datetime.date]:
        """Dates that already hold a materialized (non-deleted) instance."""
        return {a.date for a in self.appointments if a.status != AppointmentStatus.DELETED}

    @property
    def last_acted_on(self) -> Optional[Appointment]:
        """Return the latest confirmed or cancelled instance."""
        acted = [
            a
            for a in self.appointments
            if a.status in (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED)
        ]
        return max(acted, key=lambda a: a.date) if acted else None

    def get_appointment(self, appointment_id: int) -> Optional[Appointment]:
        return next((a for a in self.appointments if a.id == appointment_id), None)

    def count_by_status(self, *statuses: AppointmentStatus) -> int:
        return sum(1 for a in self.appointments if a.status in statuses)


class FamilyHistory(BaseModel):
    """Instances retained after their family was deleted."""

    family_id: int = Field(..., description="Id of the deleted family")
    rule: RecurrenceRule = Field(..., description="Rule at deletion time")
    template: ServiceTemplate = Field(..., description="Service snapshot")
    client_id: Optional[int] = Field(None, description="Client id")
    deleted_on: datetime.date = Field(..., description="Deletion date")
    appointments: list[Appointment] = Field(default_factory=list, description="Kept instances")


class GlobalConfig(BaseModel):
    """Global configuration for recurbook."""

    min_projection_steps: int = Field(
        constants.MIN_PROJECTION_STEPS,
        description="Minimum step bound when walking toward a target month",
    )
    max_occurrences_per_month: int = Field(
        constants.MAX_OCCURRENCES_PER_MONTH,
        description="Enumeration cap inside one month",
    )
    stop_missed_on_sync: bool = Field(
        True, description="Stop families whose pending instance date has passed"
    )
    default_time: str = Field(constants.DEFAULT_TIME, description="Default appointment time")
    currency: str = Field(constants.DEFAULT_CURRENCY, description="Currency for revenue output")

    @field_validator("min_projection_steps")
    @classmethod
    def validate_min_projection_steps(cls, v: int) -> int:
        """Ensure the walk bound never drops below the documented floor."""
        if v < constants.MIN_PROJECTION_STEPS:
            raise ValueError(
                f"min_projection_steps must be at least {constants.MIN_PROJECTION_STEPS}"
            )
        return v

    @field_validator("max_occurrences_per_month")
    @classmethod
    def validate_max_occurrences(cls, v: int) -> int:
        """A weekly rule can land five times in one month."""
        if v < 5:
            raise ValueError("max_occurrences_per_month must be at least 5")
        return v

    @field_validator("default_time")
    @classmethod
    def validate_default_time(cls, v: str) -> str:
        return validate_time(v)
