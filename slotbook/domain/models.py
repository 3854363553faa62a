"""
Domain models for partners, services, appointments and payments.
"""

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pendulum import Date, DateTime

from .exceptions import InvalidStatusTransitionError


class AppointmentStatus(str, Enum):
    """Lifecycle of an appointment. Rows are never deleted, only transitioned."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in _APPOINTMENT_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _APPOINTMENT_TRANSITIONS[self]


class PaymentStatus(str, Enum):
    """Lifecycle of a payment record."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _PAYMENT_TRANSITIONS[self]


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PIX = "pix"


_APPOINTMENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.CANCELED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.CANCELED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}

_PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# Appointments in these states occupy their slot.
ACTIVE_APPOINTMENT_STATUSES: FrozenSet[AppointmentStatus] = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
)


def ensure_appointment_transition(
    current: AppointmentStatus,
    target: AppointmentStatus,
) -> None:
    """Raise if ``current -> target`` is not an allowed appointment transition."""
    if not current.can_transition_to(target):
        raise InvalidStatusTransitionError(
            f"Appointment cannot move from '{current.value}' to '{target.value}'"
        )


def ensure_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    """Raise if ``current -> target`` is not an allowed payment transition."""
    if not current.can_transition_to(target):
        raise InvalidStatusTransitionError(
            f"Payment cannot move from '{current.value}' to '{target.value}'"
        )


@dataclass(frozen=True)
class Partner:
    """A service-providing business."""
    id: str
    business_name: str
    category: str = ""
    city: str = ""
    neighborhood: Optional[str] = None
    rating: Optional[float] = None
    total_reviews: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class Service:
    """
    A bookable offering of exactly one partner.

    Invariant: price is non-negative and duration is a positive number of minutes.
    """
    id: str
    partner_id: str
    name: str
    price: Decimal
    duration: int
    description: Optional[str] = None

    def __post_init__(self):
        if self.price < 0:
            raise ValueError(f"Service price must not be negative, got {self.price}")
        if self.duration <= 0:
            raise ValueError(f"Service duration must be positive, got {self.duration}")


@dataclass(frozen=True)
class TimeSlot:
    """A candidate start time on a calendar date. Never persisted."""
    day: Date
    start: time

    def label(self) -> str:
        return self.start.strftime("%H:%M")


@dataclass(frozen=True)
class SlotOffer:
    """One grid entry as shown to the customer."""
    start: time
    available: bool

    def label(self) -> str:
        return self.start.strftime("%H:%M")


@dataclass
class Appointment:
    id: str
    user_id: str
    partner_id: str
    service_id: str
    date_time: DateTime
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: Optional[DateTime] = None
    updated_at: Optional[DateTime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES


@dataclass
class Payment:
    id: str
    appointment_id: str
    user_id: str
    method: PaymentMethod
    amount: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    pix_code: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: Optional[DateTime] = None


@dataclass(frozen=True)
class CardDetails:
    """
    Card fields collected by the payment form.

    Only checked for presence; nothing here is ever written to the store.
    """
    number: str = ""
    holder_name: str = ""
    expiry: str = ""
    cvv: str = ""

    def missing_fields(self) -> List[str]:
        values = {
            "number": self.number,
            "holder_name": self.holder_name,
            "expiry": self.expiry,
            "cvv": self.cvv,
        }
        return [name for name, value in values.items() if not value.strip()]


@dataclass(frozen=True)
class BookingContext:
    """
    The customer's selection, carried from slot picking through payment
    to the confirmation screen.
    """
    partner_id: str
    service_id: str
    service_name: str
    partner_name: str
    price: Decimal
    duration: int
    date_time: DateTime


@dataclass(frozen=True)
class BookingConfirmation:
    appointment_id: str
    payment_id: str
    method: PaymentMethod
    context: BookingContext
    pix_code: Optional[str] = None


@dataclass
class AppointmentSummary:
    """
    An appointment joined with the service, partner and payment fields
    shown in the customer's listing.

    ``payment_status`` is None when the appointment has no payment row.
    """
    appointment: Appointment
    service_name: str = ""
    service_price: Optional[Decimal] = None
    partner_name: str = ""
    partner_city: str = ""
    payment_status: Optional[PaymentStatus] = None

    @property
    def id(self) -> str:
        return self.appointment.id

    @property
    def date_time(self) -> DateTime:
        return self.appointment.date_time

    @property
    def status(self) -> AppointmentStatus:
        return self.appointment.status

    @property
    def is_active(self) -> bool:
        return self.appointment.is_active


@dataclass
class AppointmentOverview:
    """A customer's appointments split the way the appointments screen shows them."""
    upcoming: List[AppointmentSummary] = field(default_factory=list)
    past: List[AppointmentSummary] = field(default_factory=list)
