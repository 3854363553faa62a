"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityCalculator, ConflictResult, is_slot_available
from .models import (
    Appointment,
    AppointmentStatus,
    AppointmentSummary,
    BookingConfirmation,
    BookingContext,
    CardDetails,
    Partner,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Service,
    SlotOffer,
    TimeSlot,
)
from .time_grid import bookable_dates, generate_time_grid

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AppointmentSummary",
    "AvailabilityCalculator",
    "BookingConfirmation",
    "BookingContext",
    "CardDetails",
    "ConflictResult",
    "Partner",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Service",
    "SlotOffer",
    "TimeSlot",
    "bookable_dates",
    "generate_time_grid",
    "is_slot_available",
]
