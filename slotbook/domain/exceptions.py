"""
Domain-specific exception hierarchy for the booking application.
"""


class SlotbookError(Exception):
    """Base class for all application-level errors."""


class RecordStoreError(SlotbookError):
    """Raised when the record store cannot be read from or written to."""


class RecordNotFoundError(RecordStoreError):
    """Raised when a requested record does not exist."""


class SlotAlreadyBookedError(RecordStoreError):
    """Raised by the store when an active appointment already holds the slot."""


class AuthenticationError(SlotbookError):
    """Raised when sign-in or session handling fails."""


class InvalidStatusTransitionError(SlotbookError):
    """Raised when a status change is not allowed by the state machine."""


class BookingError(SlotbookError):
    """Base class for failures while committing a booking."""


class PaymentValidationError(BookingError):
    """Raised when payment input is incomplete. Nothing has been written."""

    def __init__(self, missing_fields):
        self.missing_fields = tuple(missing_fields)
        super().__init__(
            f"Missing payment fields: {', '.join(self.missing_fields)}"
        )


class PaymentProcessingError(BookingError):
    """Raised when any write of the booking commit fails."""

    def __init__(self, message: str, step: str, appointment_id: str | None = None):
        self.step = step
        self.appointment_id = appointment_id
        super().__init__(message)


class SlotUnavailableError(BookingError):
    """Raised when the selected slot was taken before the commit landed."""
