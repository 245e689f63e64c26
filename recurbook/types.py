"""Type definitions and enums for recurbook."""

from enum import Enum


class RuleType(str, Enum):
    """Recurrence rule kinds, as written in the serialized ``type`` field."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    EVERY_3_WEEKS = "every3weeks"
    EVERY_4_WEEKS = "every4weeks"
    MONTHLY = "monthly"
    CUSTOM_MONTHS = "customMonths"
    MONTHLY_PATTERN = "monthlyPattern"


class FamilyStatus(str, Enum):
    """Recurrence family status."""

    ACTIVE = "active"
    STOPPED = "stopped"


class AppointmentStatus(str, Enum):
    """
    Appointment instance lifecycle status.

    Flow: unconfirmed → confirmed → completed
              ↘ cancelled      ↘ cancelled
              ↘ deleted        ↘ rescheduled_old (+ new rescheduled_new)
    """

    UNCONFIRMED = "unconfirmed"  # Generated by a family, awaiting confirm/skip
    CONFIRMED = "confirmed"  # Booked
    COMPLETED = "completed"  # Job done
    CANCELLED = "cancelled"  # Skipped or cancelled
    RESCHEDULED_OLD = "rescheduled_old"  # Superseded by a rescheduled copy
    RESCHEDULED_NEW = "rescheduled_new"  # Replacement for a rescheduled booking
    DELETED = "deleted"  # Pending instance dropped with its family


# Weeks added by each fixed-week rule
WEEKS_BY_RULE_TYPE = {
    RuleType.WEEKLY: 1,
    RuleType.BIWEEKLY: 2,
    RuleType.EVERY_3_WEEKS: 3,
    RuleType.EVERY_4_WEEKS: 4,
}

# Serialized weekday numbering: 0 = Sunday ... 6 = Saturday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

WEEK_OF_MONTH_NAMES = {1: "first", 2: "second", 3: "third", 4: "fourth", -1: "last"}
