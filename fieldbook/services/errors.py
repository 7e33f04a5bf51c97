"""Scheduling error kinds.

Raised by the services and caught by the surrounding application, which
renders ``code`` and ``message`` to the user.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    code = "SchedulingError"
    recoverable = True

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        """Serializable form for API responses and logs."""
        return {"code": self.code, "message": self.message, **self.context}


class MissingData(SchedulingError):
    """Requester, facility, date or window is absent from a booking request."""

    code = "MissingData"


class SlotUnavailable(SchedulingError):
    """The requested slot is gone, inactive or blocked by a confirmed booking."""

    code = "SlotUnavailable"


class OutsideBusinessHours(SchedulingError):
    """The requested window starts outside bookable hours."""

    code = "OutsideBusinessHours"


class SlotDefinitionNotFoundOnConfirm(SchedulingError):
    """Confirmation found no slot definition left to consume."""

    code = "SlotDefinitionNotFoundOnConfirm"


class StoreUnavailable(SchedulingError):
    """The persistence collaborator failed; the caller may re-submit."""

    code = "StoreUnavailable"


class InvalidTransition(SchedulingError):
    """Reservation status change not in the transition table."""

    code = "InvalidTransition"
    recoverable = False


class PermissionDenied(SchedulingError):
    """The acting user may not perform the operation."""

    code = "PermissionDenied"
    recoverable = False


class ReservationNotFound(SchedulingError):
    """No reservation with the given id."""

    code = "ReservationNotFound"
    recoverable = False


class SlotDefinitionNotFound(SchedulingError):
    """No slot definition with the given id."""

    code = "SlotDefinitionNotFound"
    recoverable = False


class InvalidSlotDefinition(SchedulingError):
    """Slot definition fields are malformed."""

    code = "InvalidSlotDefinition"


class DuplicateSlotDefinition(SchedulingError):
    """An active slot with the same facility, applicability and window exists."""

    code = "DuplicateSlotDefinition"


class WindowBusy(SchedulingError):
    """Another booking operation holds the window lock."""

    code = "WindowBusy"


class StaleApproval(SchedulingError):
    """The slot changed between validation and commit."""

    code = "StaleApproval"


def rejection_error(code: str, message: str, **context) -> SchedulingError:
    """Build the exception matching a validation rejection code."""
    error_cls: Optional[type[SchedulingError]] = {
        MissingData.code: MissingData,
        SlotUnavailable.code: SlotUnavailable,
        OutsideBusinessHours.code: OutsideBusinessHours,
    }.get(code)
    if error_cls is None:
        error_cls = SchedulingError
    return error_cls(message, **context)
