"""
Tests for the BookingService orchestration layer.
"""

import asyncio
from decimal import Decimal

import pendulum
import pytest

from slotbook.adapters.memory_store import InMemoryRecordStore
from slotbook.domain.availability import AvailabilityCalculator
from slotbook.domain.exceptions import (
    InvalidStatusTransitionError,
    RecordNotFoundError,
    RecordStoreError,
)
from slotbook.domain.models import (
    Appointment,
    AppointmentStatus,
    Partner,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Service,
)
from slotbook.domain.time_grid import generate_time_grid
from slotbook.services.booking_service import BookingService

TZ = "America/Sao_Paulo"
NOW = pendulum.parse("2024-01-01 10:15", tz=TZ)


class UnreachableConflictsStore(InMemoryRecordStore):
    async def list_appointment_times(self, partner_id, start, end, statuses):
        raise RecordStoreError("read timed out")


def _seeded(store_cls=InMemoryRecordStore) -> InMemoryRecordStore:
    store = store_cls(data_file=None)
    store.add_partner(Partner(id="studio-bella", business_name="Studio Bella", category="beleza"))
    store.add_partner(Partner(id="barbearia", business_name="Barbearia Central"))
    store.add_service(
        Service(id="manicure", partner_id="studio-bella", name="Manicure", price=Decimal("45.00"), duration=30)
    )
    store.add_service(
        Service(id="barba", partner_id="barbearia", name="Barba", price=Decimal("35.00"), duration=30)
    )
    store.add_appointment(
        Appointment(
            id="existing",
            user_id="other",
            partner_id="studio-bella",
            service_id="manicure",
            date_time=pendulum.parse("2024-01-01 14:00", tz=TZ),
            status=AppointmentStatus.CONFIRMED,
        )
    )
    store.add_appointment(
        Appointment(
            id="canceled",
            user_id="other",
            partner_id="studio-bella",
            service_id="manicure",
            date_time=pendulum.parse("2024-01-01 15:00", tz=TZ),
            status=AppointmentStatus.CANCELED,
        )
    )
    return store


def _build_service(store) -> BookingService:
    calculator = AvailabilityCalculator(grid=generate_time_grid(), timezone=TZ)
    return BookingService(store=store, calculator=calculator)


def _available(offers):
    return {offer.label() for offer in offers if offer.available}


def test_list_slots_marks_past_and_booked_slots():
    service = _build_service(_seeded())

    offers = asyncio.run(service.list_slots("studio-bella", pendulum.date(2024, 1, 1), NOW))

    available = _available(offers)
    assert len(offers) == 21
    assert "10:00" not in available
    assert "10:30" in available
    assert "14:00" not in available
    assert "15:00" in available  # canceled appointment frees the slot


def test_list_slots_without_date_offers_nothing():
    service = _build_service(_seeded())

    offers = asyncio.run(service.list_slots("studio-bella", None, NOW))

    assert _available(offers) == set()


def test_list_slots_fails_open_when_conflicts_unavailable():
    service = _build_service(_seeded(UnreachableConflictsStore))

    offers = asyncio.run(service.list_slots("studio-bella", pendulum.date(2024, 1, 1), NOW))

    assert "14:00" in _available(offers)


def test_lookup_conflicts_exposes_failure():
    service = _build_service(_seeded(UnreachableConflictsStore))

    result = asyncio.run(service.lookup_conflicts("studio-bella", pendulum.date(2024, 1, 1)))

    assert not result.is_ok


def test_load_context_copies_service_and_partner_fields():
    service = _build_service(_seeded())
    when = pendulum.parse("2024-01-02 09:30", tz=TZ)

    context = asyncio.run(service.load_context("studio-bella", "manicure", when))

    assert context.partner_name == "Studio Bella"
    assert context.service_name == "Manicure"
    assert context.price == Decimal("45.00")
    assert context.duration == 30
    assert context.date_time == when


def test_load_context_rejects_service_of_other_partner():
    service = _build_service(_seeded())

    with pytest.raises(RecordNotFoundError):
        asyncio.run(service.load_context("studio-bella", "barba", NOW))


def test_load_context_unknown_partner():
    service = _build_service(_seeded())

    with pytest.raises(RecordNotFoundError):
        asyncio.run(service.load_context("nobody", "manicure", NOW))


def test_booked_slot_disappears_from_listing():
    store = _seeded()
    service = _build_service(store)
    when = pendulum.parse("2024-01-02 09:30", tz=TZ)

    context = asyncio.run(service.load_context("studio-bella", "manicure", when))
    asyncio.run(service.book(customer_id="customer-1", context=context, method=PaymentMethod.PIX))
    offers = asyncio.run(service.list_slots("studio-bella", pendulum.date(2024, 1, 2), NOW))

    assert "09:30" not in _available(offers)
    assert "09:00" in _available(offers)


def test_list_appointments_splits_upcoming_and_past():
    store = _seeded()
    service = _build_service(store)
    for id_, when, status in [
        ("mine-next", "2024-01-03 09:00", AppointmentStatus.CONFIRMED),
        ("mine-later", "2024-01-09 09:00", AppointmentStatus.PENDING),
        ("mine-old", "2023-12-01 09:00", AppointmentStatus.COMPLETED),
    ]:
        store.add_appointment(
            Appointment(
                id=id_,
                user_id="customer-1",
                partner_id="studio-bella",
                service_id="manicure",
                date_time=pendulum.parse(when, tz=TZ),
                status=status,
            )
        )

    overview = asyncio.run(service.list_appointments("customer-1", NOW))

    assert [a.id for a in overview.upcoming] == ["mine-later", "mine-next"]
    assert [a.id for a in overview.past] == ["mine-old"]


def test_cancel_own_appointment():
    store = _seeded()
    service = _build_service(store)
    store.add_appointment(
        Appointment(
            id="mine",
            user_id="customer-1",
            partner_id="studio-bella",
            service_id="manicure",
            date_time=pendulum.parse("2024-01-03 09:00", tz=TZ),
            status=AppointmentStatus.CONFIRMED,
        )
    )

    asyncio.run(service.cancel_appointment("customer-1", "mine"))

    assert store.appointments["mine"].status is AppointmentStatus.CANCELED
    with pytest.raises(InvalidStatusTransitionError):
        asyncio.run(service.cancel_appointment("customer-1", "mine"))


def test_cannot_cancel_someone_elses_appointment():
    store = _seeded()
    service = _build_service(store)

    with pytest.raises(RecordNotFoundError):
        asyncio.run(service.cancel_appointment("customer-1", "existing"))

    assert store.appointments["existing"].status is AppointmentStatus.CONFIRMED


def test_list_appointments_carries_service_partner_and_payment():
    store = _seeded()
    service = _build_service(store)
    when = pendulum.parse("2024-01-02 09:30", tz=TZ)
    context = asyncio.run(service.load_context("studio-bella", "manicure", when))
    confirmation = asyncio.run(
        service.book(customer_id="customer-1", context=context, method=PaymentMethod.PIX)
    )

    overview = asyncio.run(service.list_appointments("customer-1", NOW))

    [summary] = overview.upcoming
    assert summary.id == confirmation.appointment_id
    assert summary.service_name == "Manicure"
    assert summary.service_price == Decimal("45.00")
    assert summary.partner_name == "Studio Bella"
    assert summary.payment_status is PaymentStatus.PAID


def test_list_appointments_shows_refunded_payment():
    store = _seeded()
    service = _build_service(store)
    store.add_appointment(
        Appointment(
            id="mine",
            user_id="customer-1",
            partner_id="barbearia",
            service_id="barba",
            date_time=pendulum.parse("2023-12-20 09:00", tz=TZ),
            status=AppointmentStatus.CANCELED,
        )
    )
    store.add_payment(
        Payment(
            id="pay-1",
            appointment_id="mine",
            user_id="customer-1",
            method=PaymentMethod.CREDIT_CARD,
            amount=Decimal("35.00"),
            status=PaymentStatus.REFUNDED,
        )
    )

    overview = asyncio.run(service.list_appointments("customer-1", NOW))

    [summary] = overview.past
    assert summary.partner_name == "Barbearia Central"
    assert summary.service_name == "Barba"
    assert summary.payment_status is PaymentStatus.REFUNDED


def test_search_partners_filters_and_orders_by_rating():
    store = _seeded()
    store.add_partner(
        Partner(id="bella-centro", business_name="Bella Centro", category="beleza",
                city="Curitiba", rating=4.9)
    )
    store.add_partner(
        Partner(id="bella-fechado", business_name="Bella Fechado", category="beleza",
                city="Curitiba", rating=5.0, is_active=False)
    )
    store.partners["studio-bella"] = Partner(
        id="studio-bella", business_name="Studio Bella", category="beleza",
        city="São Paulo", neighborhood="Pinheiros", rating=4.5,
    )
    service = _build_service(store)

    by_text = asyncio.run(service.search_partners(text="BELLA"))
    by_both = asyncio.run(service.search_partners(text="beleza", location="pinheiros"))

    assert [p.id for p in by_text] == ["bella-centro", "studio-bella"]
    assert [p.id for p in by_both] == ["studio-bella"]
