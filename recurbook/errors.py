"""Exception types raised by the recurrence engine."""


class RecurbookError(Exception):
    """Base class for all recurbook errors."""


class InvalidRuleError(RecurbookError, ValueError):
    """Recurrence rule is missing required fields or has out-of-range values."""


class PreconditionViolation(RecurbookError):
    """Lifecycle operation rejected because the family/instance is in the wrong state."""


class AnchorMissingError(RecurbookError):
    """No reference date is available to anchor date computation."""


class FamilyNotFoundError(RecurbookError, LookupError):
    """No recurrence family with the requested id."""


class AppointmentNotFoundError(RecurbookError, LookupError):
    """No appointment instance with the requested id."""
