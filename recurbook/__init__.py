"""Recurbook - Recurring appointment scheduling for field-service businesses.

This package computes occurrence dates for recurrence rules, projects them
onto calendar months for calendars and revenue estimates, and manages the
lifecycle of recurrence families and the appointment instances they generate.

Main exports:
    RecurringService: Operations over a FamilyStore (list, confirm, skip, ...)
    RecurrenceEngine: next/previous occurrence of a rule
    OccurrenceProjector: occurrences of a rule inside a month
"""

__version__ = "1.0.0"

from .errors import (
    AnchorMissingError,
    AppointmentNotFoundError,
    FamilyNotFoundError,
    InvalidRuleError,
    PreconditionViolation,
    RecurbookError,
)
from .lifecycle import RecurrenceFamilyManager
from .projection import OccurrenceProjector, count_occurrences_in_month
from .recurrence import RecurrenceEngine, describe_rule
from .schema import RecurrenceFamily, parse_rule
from .service import RecurringService
from .store import InMemoryFamilyStore, YamlFamilyStore

__all__ = [
    "AnchorMissingError",
    "AppointmentNotFoundError",
    "FamilyNotFoundError",
    "InMemoryFamilyStore",
    "InvalidRuleError",
    "OccurrenceProjector",
    "PreconditionViolation",
    "RecurbookError",
    "RecurrenceEngine",
    "RecurrenceFamily",
    "RecurrenceFamilyManager",
    "RecurringService",
    "YamlFamilyStore",
    "count_occurrences_in_month",
    "describe_rule",
    "parse_rule",
]
