"""Appointment instance status state machine."""

from .errors import PreconditionViolation
from .types import AppointmentStatus

# Statuses an instance can move to from each status. Terminal statuses map to
# an empty set.
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.UNCONFIRMED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.DELETED,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED_OLD,
        }
    ),
    AppointmentStatus.RESCHEDULED_NEW: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED_OLD,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.RESCHEDULED_OLD: frozenset(),
    AppointmentStatus.DELETED: frozenset(),
}

# Generated by a family and awaiting confirm/skip
PENDING_STATUSES = frozenset({AppointmentStatus.UNCONFIRMED})

# Booked jobs that count as upcoming work
BOOKED_STATUSES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED_NEW})


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Return True if an instance in ``current`` may move to ``new``."""
    return new in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def ensure_transition(current: AppointmentStatus, new: AppointmentStatus) -> None:
    """
    Validate a status change.

    Raises:
        PreconditionViolation: If the transition is not allowed
    """
    if not can_transition(current, new):
        raise PreconditionViolation(
            f"Cannot change appointment status from {AppointmentStatus(current).value} "
            f"to {AppointmentStatus(new).value}"
        )


def is_terminal(status: AppointmentStatus) -> bool:
    """Return True if no further transitions are possible."""
    return not ALLOWED_TRANSITIONS[AppointmentStatus(status)]
