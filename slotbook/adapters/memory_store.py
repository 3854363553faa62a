"""
In-memory record store for demos and tests without a hosted backend.
"""

import asyncio
import copy
import json
import uuid
from decimal import Decimal
from pathlib import Path
from typing import Any, Collection, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import RecordNotFoundError, SlotAlreadyBookedError
from ..domain.models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentSummary,
    Partner,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Service,
)
from .session import CustomerSession

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_store_data.json"


class InMemoryRecordStore:
    """
    Store that keeps partners, services, appointments and payments in dicts.

    Seed data is loaded from mock_store_data.json (or any file with the same
    shape). With ``enforce_unique_slots`` the appointment insert is an atomic
    check-and-insert: a second active appointment for the same partner and
    date-time is rejected, mirroring a unique index in the hosted database.
    """

    def __init__(
        self,
        data_file: Optional[Path] = DEFAULT_DATA_FILE,
        enforce_unique_slots: bool = True,
    ):
        self.enforce_unique_slots = enforce_unique_slots
        self.partners: Dict[str, Partner] = {}
        self.services: Dict[str, Service] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.payments: Dict[str, Payment] = {}
        self._write_lock = asyncio.Lock()
        if data_file is not None:
            self._load_seed_data(data_file)

    def _load_seed_data(self, data_file: Path) -> None:
        """Load seed records from a JSON file."""
        if not data_file.exists():
            return

        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        for row in data.get("partners", []):
            self.add_partner(Partner(**row))
        for row in data.get("services", []):
            self.add_service(
                Service(**{**row, "price": Decimal(str(row["price"]))})
            )
        for row in data.get("appointments", []):
            self.add_appointment(
                Appointment(
                    id=row["id"],
                    user_id=row["user_id"],
                    partner_id=row["partner_id"],
                    service_id=row["service_id"],
                    date_time=pendulum.parse(row["date_time"]),
                    status=AppointmentStatus(row.get("status", "pending")),
                )
            )
        for row in data.get("payments", []):
            self.add_payment(
                Payment(
                    id=row["id"],
                    appointment_id=row["appointment_id"],
                    user_id=row["user_id"],
                    method=PaymentMethod(row["method"]),
                    amount=Decimal(str(row["amount"])),
                    status=PaymentStatus(row.get("status", "pending")),
                    pix_code=row.get("pix_code"),
                )
            )

    def add_partner(self, partner: Partner) -> None:
        self.partners[partner.id] = partner

    def add_service(self, service: Service) -> None:
        self.services[service.id] = service

    def add_appointment(self, appointment: Appointment) -> None:
        """Seed an appointment directly, bypassing the slot constraint."""
        self.appointments[appointment.id] = appointment

    def add_payment(self, payment: Payment) -> None:
        self.payments[payment.id] = payment

    async def get_partner(self, partner_id: str) -> Optional[Partner]:
        return self.partners.get(partner_id)

    async def search_partners(
        self,
        text: Optional[str] = None,
        location: Optional[str] = None,
    ) -> List[Partner]:
        found = [
            partner
            for partner in self.partners.values()
            if partner.is_active
            and _matches(text, partner.business_name, partner.category)
            and _matches(location, partner.city, partner.neighborhood)
        ]
        return sorted(found, key=lambda p: (p.rating is None, -(p.rating or 0)))

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self.services.get(service_id)

    async def list_partner_services(self, partner_id: str) -> List[Service]:
        offered = [s for s in self.services.values() if s.partner_id == partner_id]
        return sorted(offered, key=lambda s: s.price)

    async def list_appointment_times(
        self,
        partner_id: str,
        start: DateTime,
        end: DateTime,
        statuses: Collection[AppointmentStatus],
    ) -> List[DateTime]:
        return [
            appointment.date_time
            for appointment in self.appointments.values()
            if appointment.partner_id == partner_id
            and appointment.status in statuses
            and start <= appointment.date_time <= end
        ]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        appointment = self.appointments.get(appointment_id)
        return copy.copy(appointment) if appointment else None

    async def list_customer_appointments(self, user_id: str) -> List[AppointmentSummary]:
        owned = [
            self._summarize(appointment)
            for appointment in self.appointments.values()
            if appointment.user_id == user_id
        ]
        return sorted(owned, key=lambda a: a.date_time, reverse=True)

    async def insert_appointment(
        self,
        *,
        user_id: str,
        service_id: str,
        partner_id: str,
        date_time: DateTime,
        status: AppointmentStatus,
    ) -> Appointment:
        async with self._write_lock:
            if self.enforce_unique_slots and self._slot_taken(partner_id, date_time):
                raise SlotAlreadyBookedError(
                    f"Partner {partner_id} already has an appointment at "
                    f"{date_time.to_iso8601_string()}"
                )

            now = pendulum.now("UTC")
            appointment = Appointment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                partner_id=partner_id,
                service_id=service_id,
                date_time=date_time,
                status=status,
                created_at=now,
                updated_at=now,
            )
            self.appointments[appointment.id] = appointment
            return copy.copy(appointment)

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
        if appointment_id not in self.appointments:
            raise RecordNotFoundError(f"Appointment not found: {appointment_id}")

        payment = Payment(
            id=str(uuid.uuid4()),
            appointment_id=appointment_id,
            user_id=user_id,
            method=method,
            amount=amount,
            status=status,
            pix_code=pix_code,
            created_at=pendulum.now("UTC"),
        )
        self.payments[payment.id] = payment
        return copy.copy(payment)

    async def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> None:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise RecordNotFoundError(f"Appointment not found: {appointment_id}")
        appointment.status = status
        appointment.updated_at = pendulum.now("UTC")

    async def update_payment_status(self, payment_id: str, status: PaymentStatus) -> None:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise RecordNotFoundError(f"Payment not found: {payment_id}")
        payment.status = status

    def payments_for(self, appointment_id: str) -> List[Payment]:
        return [p for p in self.payments.values() if p.appointment_id == appointment_id]

    def _summarize(self, appointment: Appointment) -> AppointmentSummary:
        service = self.services.get(appointment.service_id)
        partner = self.partners.get(appointment.partner_id)
        payments = self.payments_for(appointment.id)
        return AppointmentSummary(
            appointment=copy.copy(appointment),
            service_name=service.name if service else "",
            service_price=service.price if service else None,
            partner_name=partner.business_name if partner else "",
            partner_city=partner.city if partner else "",
            payment_status=payments[-1].status if payments else None,
        )

    def _slot_taken(self, partner_id: str, date_time: DateTime) -> bool:
        return any(
            appointment.partner_id == partner_id
            and appointment.date_time == date_time
            and appointment.status in ACTIVE_APPOINTMENT_STATUSES
            for appointment in self.appointments.values()
        )


def _matches(term: Optional[str], *fields: Optional[str]) -> bool:
    if not term:
        return True
    needle = term.casefold()
    return any(needle in value.casefold() for value in fields if value)


class MockAuthenticator:
    """
    Authenticator that hands out a fixed demo customer session.

    Used with --mock so the booking flow runs without a hosted auth service.
    """

    DEMO_USER_ID = "demo-customer"

    def __init__(self, email: str = "cliente@example.com", **kwargs: Any):
        self.email = email

    def get_session(self, force_refresh: bool = False) -> CustomerSession:
        return CustomerSession(
            user_id=self.DEMO_USER_ID,
            email=self.email,
            access_token="mock_access_token_12345",
            refresh_token="mock_refresh_token",
            expires_at=pendulum.now("UTC").add(hours=1).int_timestamp,
        )

    def clear_cache(self) -> None:
        """Mock cache clear (does nothing)."""
        pass
