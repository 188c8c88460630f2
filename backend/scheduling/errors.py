"""Exceptions raised by the scheduling core."""


class SchedulingError(Exception):
    """Base class for scheduling failures. ``message`` is safe to show to users."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookingValidationError(SchedulingError):
    """The request is incomplete or malformed; the caller should re-prompt."""


class StoreError(SchedulingError):
    """A schedule or appointment store read/write failed."""

    def __init__(self, message: str, *, code: str | None = None, retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class CapacityExceededError(SchedulingError):
    """The selected slot has no remaining capacity."""


class AppointmentNotFoundError(SchedulingError):
    pass


class NotAppointmentOwnerError(SchedulingError):
    pass


class InvalidStatusTransitionError(SchedulingError):
    pass
