"""
Record store contract consumed by the booking services.

Every call may suspend and may fail independently; implementations raise
``RecordStoreError`` (or a subclass) and never partially apply a single call.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Collection, List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import (
    Appointment,
    AppointmentStatus,
    AppointmentSummary,
    Partner,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Service,
)


class RecordStoreProtocol(Protocol):
    """Protocol describing the record store behaviour needed by the services."""

    async def get_partner(self, partner_id: str) -> Optional[Partner]:
        """Return the partner or ``None`` when it does not exist."""

    async def search_partners(
        self,
        text: Optional[str] = None,
        location: Optional[str] = None,
    ) -> List[Partner]:
        """
        Return active partners, best rated first.

        ``text`` matches name or category and ``location`` matches city or
        neighborhood, both as case-insensitive substrings.
        """

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Return the service or ``None`` when it does not exist."""

    async def list_partner_services(self, partner_id: str) -> List[Service]:
        """Return the services offered by a partner."""

    async def list_appointment_times(
        self,
        partner_id: str,
        start: DateTime,
        end: DateTime,
        statuses: Collection[AppointmentStatus],
    ) -> List[DateTime]:
        """Return ``date_time`` of the partner's appointments in ``[start, end]``."""

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Return the appointment or ``None`` when it does not exist."""

    async def list_customer_appointments(self, user_id: str) -> List[AppointmentSummary]:
        """Return all appointments of a customer with their details, newest first."""

    async def insert_appointment(
        self,
        *,
        user_id: str,
        service_id: str,
        partner_id: str,
        date_time: DateTime,
        status: AppointmentStatus,
    ) -> Appointment:
        """Persist a new appointment and return it with its generated id."""

    async def insert_payment(
        self,
        *,
        appointment_id: str,
        user_id: str,
        method: PaymentMethod,
        amount: Decimal,
        status: PaymentStatus,
        pix_code: Optional[str] = None,
    ) -> Payment:
        """Persist a new payment and return it with its generated id."""

    async def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> None:
        """Overwrite the status of an appointment."""

    async def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
    ) -> None:
        """Overwrite the status of a payment."""
