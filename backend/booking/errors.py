"""Failures raised by the availability and reservation engine.

Every failure of a booking operation is exactly one of the four kinds below.
``retryable`` tells a caller whether resubmitting the same request can
succeed later.
"""


class BookingError(Exception):
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookingError):
    """Unknown resource, reservation or subject."""


class InvalidSlotError(BookingError):
    """The request breaks a static rule: past time, closed day, quota exhausted."""


class ConflictError(BookingError):
    """Another reservation won the slot.

    ``available_slots`` holds a fresh availability list for the same day when
    the caller can be re-offered alternatives.
    """

    retryable = True

    def __init__(self, message: str, available_slots: list[str] | None = None):
        super().__init__(message)
        self.available_slots = available_slots or []


class InternalError(BookingError):
    """Storage failure, reference allocation exhaustion or commit timeout."""

    retryable = True
