"""
Application service for the customer booking flow.

The service coordinates record store reads, the domain availability rules and
the booking committer. The current customer is always passed in explicitly so
the flow can be exercised without an identity provider.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pendulum import Date, DateTime

from ..domain.availability import AvailabilityCalculator, ConflictResult, split_appointments
from ..domain.exceptions import RecordNotFoundError
from ..domain.models import (
    AppointmentOverview,
    AppointmentStatus,
    BookingConfirmation,
    BookingContext,
    CardDetails,
    Partner,
    PaymentMethod,
    Service,
    SlotOffer,
    ensure_appointment_transition,
)
from .booking_committer import BookingCommitter
from .conflict_resolver import ConflictResolver
from .record_store import RecordStoreProtocol

logger = logging.getLogger(__name__)


class BookingService:
    """
    Orchestrates slot listing, booking and appointment management.

    Dependency inversion toward ``RecordStoreProtocol`` makes it easy to plug
    in the hosted store or the in-memory implementation in tests.
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        calculator: AvailabilityCalculator,
        resolver: Optional[ConflictResolver] = None,
        committer: Optional[BookingCommitter] = None,
    ) -> None:
        self._store = store
        self._calculator = calculator
        self._resolver = resolver or ConflictResolver(store, calculator.timezone)
        self._committer = committer or BookingCommitter(store)

    @property
    def calculator(self) -> AvailabilityCalculator:
        return self._calculator

    async def get_partner(self, partner_id: str) -> Partner:
        partner = await self._store.get_partner(partner_id)
        if partner is None:
            raise RecordNotFoundError(f"Partner not found: {partner_id}")
        return partner

    async def search_partners(
        self,
        text: Optional[str] = None,
        location: Optional[str] = None,
    ) -> List[Partner]:
        return await self._store.search_partners(text=text, location=location)

    async def get_service(self, partner_id: str, service_id: str) -> Service:
        """Fetch a service and make sure it is offered by ``partner_id``."""
        service = await self._store.get_service(service_id)
        if service is None or service.partner_id != partner_id:
            raise RecordNotFoundError(
                f"Service {service_id} not found for partner {partner_id}"
            )
        return service

    async def list_services(self, partner_id: str) -> List[Service]:
        return await self._store.list_partner_services(partner_id)

    async def load_context(
        self,
        partner_id: str,
        service_id: str,
        date_time: DateTime,
    ) -> BookingContext:
        """Build the booking context for a selected slot."""
        partner = await self.get_partner(partner_id)
        service = await self.get_service(partner_id, service_id)

        return BookingContext(
            partner_id=partner.id,
            service_id=service.id,
            service_name=service.name,
            partner_name=partner.business_name,
            price=service.price,
            duration=service.duration,
            date_time=date_time,
        )

    async def lookup_conflicts(self, partner_id: str, day: Date) -> ConflictResult:
        return await self._resolver.resolve(partner_id, day)

    async def list_slots(
        self,
        partner_id: str,
        day: Optional[Date],
        now: DateTime,
    ) -> List[SlotOffer]:
        """
        Return the day's grid with an availability flag per slot.

        A failed conflict lookup does not break browsing: the grid is shown
        as if no slot were taken and the store decides at commit time.
        """
        if day is None:
            return self._calculator.offers(None, now, frozenset())

        result = await self._resolver.resolve(partner_id, day)
        if not result.is_ok:
            logger.warning(
                "Showing slots for partner %s without conflict data: %s",
                partner_id,
                result.error,
            )

        return self._calculator.offers(day, now, result.conflicts_or_empty())

    async def book(
        self,
        *,
        customer_id: str,
        context: BookingContext,
        method: PaymentMethod,
        card: Optional[CardDetails] = None,
    ) -> BookingConfirmation:
        return await self._committer.commit(
            customer_id=customer_id,
            context=context,
            method=method,
            card=card,
        )

    async def list_appointments(
        self,
        customer_id: str,
        now: DateTime,
    ) -> AppointmentOverview:
        """Return the customer's appointments with service, partner and payment details."""
        appointments = await self._store.list_customer_appointments(customer_id)
        appointments.sort(key=lambda appointment: appointment.date_time, reverse=True)
        return split_appointments(appointments, now)

    async def cancel_appointment(self, customer_id: str, appointment_id: str) -> None:
        """
        Cancel one of the customer's appointments.

        Raises:
            RecordNotFoundError: If the appointment does not belong to the customer
            InvalidStatusTransitionError: If it is already canceled or completed
        """
        appointment = await self._store.get_appointment(appointment_id)
        if appointment is None or appointment.user_id != customer_id:
            raise RecordNotFoundError(f"Appointment not found: {appointment_id}")

        ensure_appointment_transition(appointment.status, AppointmentStatus.CANCELED)
        await self._store.update_appointment_status(
            appointment_id, AppointmentStatus.CANCELED
        )
        logger.info("Appointment %s canceled by customer", appointment_id)
