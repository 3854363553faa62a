"""
Tests for the REST record store adapter with a fake HTTP session.
"""

import asyncio
import json
from decimal import Decimal
from typing import Any, Dict, List

import pendulum
import pytest
import requests

from slotbook.adapters.supabase_store import SupabaseRecordStore
from slotbook.domain.exceptions import (
    PaymentProcessingError,
    RecordStoreError,
    SlotAlreadyBookedError,
)
from slotbook.domain.models import (
    ACTIVE_APPOINTMENT_STATUSES,
    AppointmentStatus,
    BookingContext,
    PaymentMethod,
    PaymentStatus,
)
from slotbook.services.booking_committer import BookingCommitter


def _response(status: int, body: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    return response


class FakeSession:
    """Records requests and replays queued responses."""

    def __init__(self, *responses: requests.Response):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.requests.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers}
        )
        if not self.responses:
            raise requests.exceptions.ConnectionError("no response queued")
        return self.responses.pop(0)


def _store(*responses) -> tuple[SupabaseRecordStore, FakeSession]:
    session = FakeSession(*responses)
    store = SupabaseRecordStore(
        url="https://example.supabase.co/",
        anon_key="anon",
        access_token="user-token",
        session=session,
    )
    return store, session


APPOINTMENT_ROW = {
    "id": "apt-1",
    "user_id": "customer-1",
    "partner_id": "studio-bella",
    "service_id": "manicure",
    "date_time": "2024-01-02T12:00:00+00:00",
    "status": "pending",
    "created_at": "2024-01-01T10:00:00+00:00",
    "updated_at": "2024-01-01T10:00:00+00:00",
}


def test_list_appointment_times_builds_filters():
    store, session = _store(_response(200, [{"date_time": "2024-01-01T17:00:00+00:00"}]))
    start = pendulum.parse("2024-01-01 00:00", tz="America/Sao_Paulo")
    end = start.end_of("day")

    times = asyncio.run(
        store.list_appointment_times("studio-bella", start, end, ACTIVE_APPOINTMENT_STATUSES)
    )

    assert times == [pendulum.parse("2024-01-01T17:00:00+00:00")]
    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "https://example.supabase.co/rest/v1/appointments"
    assert ("partner_id", "eq.studio-bella") in sent["params"]
    assert ("status", "in.(confirmed,pending)") in sent["params"]
    assert ("date_time", "gte.2024-01-01T03:00:00Z") in sent["params"]
    assert sent["headers"]["Authorization"] == "Bearer user-token"
    assert sent["headers"]["apikey"] == "anon"


def test_get_service_parses_row():
    store, _ = _store(
        _response(
            200,
            [{"id": "manicure", "partner_id": "studio-bella", "name": "Manicure",
              "description": None, "price": 45.5, "duration": 30}],
        )
    )

    service = asyncio.run(store.get_service("manicure"))

    assert service.price == Decimal("45.5")
    assert service.duration == 30


def test_get_partner_missing_returns_none():
    store, _ = _store(_response(200, []))

    assert asyncio.run(store.get_partner("nobody")) is None


def test_insert_appointment_requests_representation():
    store, session = _store(_response(201, [APPOINTMENT_ROW]))

    appointment = asyncio.run(
        store.insert_appointment(
            user_id="customer-1",
            service_id="manicure",
            partner_id="studio-bella",
            date_time=pendulum.parse("2024-01-02 09:00", tz="America/Sao_Paulo"),
            status=AppointmentStatus.PENDING,
        )
    )

    assert appointment.id == "apt-1"
    assert appointment.status is AppointmentStatus.PENDING
    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert sent["headers"]["Prefer"] == "return=representation"
    assert sent["json"]["date_time"] == "2024-01-02T12:00:00Z"
    assert sent["json"]["status"] == "pending"


def test_unique_violation_maps_to_slot_already_booked():
    store, _ = _store(
        _response(409, {"code": "23505", "message": "duplicate key value violates unique constraint"})
    )

    with pytest.raises(SlotAlreadyBookedError):
        asyncio.run(
            store.insert_appointment(
                user_id="customer-1",
                service_id="manicure",
                partner_id="studio-bella",
                date_time=pendulum.parse("2024-01-02T12:00:00Z"),
                status=AppointmentStatus.PENDING,
            )
        )


def test_insert_payment_serializes_amount_and_pix():
    row = {
        "id": "pay-1", "appointment_id": "apt-1", "user_id": "customer-1",
        "method": "pix", "amount": "45.00", "status": "paid",
        "pix_code": "PIXABC", "transaction_id": None, "created_at": None,
    }
    store, session = _store(_response(201, [row]))

    payment = asyncio.run(
        store.insert_payment(
            appointment_id="apt-1",
            user_id="customer-1",
            method=PaymentMethod.PIX,
            amount=Decimal("45.00"),
            status=PaymentStatus.PAID,
            pix_code="PIXABC",
        )
    )

    assert payment.status is PaymentStatus.PAID
    assert payment.pix_code == "PIXABC"
    assert session.requests[0]["json"]["amount"] == "45.00"


def test_update_status_without_matching_row_fails():
    store, session = _store(_response(200, []))

    with pytest.raises(RecordStoreError):
        asyncio.run(store.update_appointment_status("apt-x", AppointmentStatus.CONFIRMED))

    assert session.requests[0]["params"] == {"id": "eq.apt-x"}
    assert session.requests[0]["json"] == {"status": "confirmed"}


def test_http_error_maps_to_record_store_error():
    store, _ = _store(_response(500, {"message": "boom"}))

    with pytest.raises(RecordStoreError, match="boom"):
        asyncio.run(store.get_appointment("apt-1"))


def test_connection_error_maps_to_record_store_error():
    store, _ = _store()

    with pytest.raises(RecordStoreError):
        asyncio.run(store.list_customer_appointments("customer-1"))


def test_foreign_key_conflict_is_not_a_taken_slot():
    store, _ = _store(
        _response(409, {"code": "23503", "message": "insert or update violates foreign key constraint"})
    )

    with pytest.raises(RecordStoreError) as excinfo:
        asyncio.run(
            store.insert_appointment(
                user_id="customer-1",
                service_id="removed-service",
                partner_id="studio-bella",
                date_time=pendulum.parse("2024-01-02T12:00:00Z"),
                status=AppointmentStatus.PENDING,
            )
        )

    assert not isinstance(excinfo.value, SlotAlreadyBookedError)
    assert "foreign key" in str(excinfo.value)


def test_foreign_key_conflict_fails_commit_as_processing_error():
    store, session = _store(_response(409, {"code": "23503", "message": "foreign key"}))
    context = BookingContext(
        partner_id="studio-bella",
        service_id="removed-service",
        service_name="Manicure",
        partner_name="Studio Bella",
        price=Decimal("45.00"),
        duration=30,
        date_time=pendulum.parse("2024-01-02 09:00", tz="America/Sao_Paulo"),
    )

    with pytest.raises(PaymentProcessingError) as excinfo:
        asyncio.run(
            BookingCommitter(store).commit(
                customer_id="customer-1", context=context, method=PaymentMethod.PIX
            )
        )

    assert excinfo.value.step == "create_appointment"
    assert len(session.requests) == 1


def test_list_partner_services_orders_by_price():
    store, session = _store(_response(200, []))

    asyncio.run(store.list_partner_services("studio-bella"))

    assert session.requests[0]["params"]["order"] == "price.asc"


def test_list_customer_appointments_embeds_details():
    row = {
        **APPOINTMENT_ROW,
        "status": "confirmed",
        "services": {"name": "Manicure", "price": 45},
        "partners": {"business_name": "Studio Bella", "city": "São Paulo"},
        "payments": [
            {"status": "paid", "created_at": "2024-01-01T10:00:00+00:00"},
            {"status": "refunded", "created_at": "2024-01-01T11:00:00+00:00"},
        ],
    }
    store, session = _store(_response(200, [row]))

    summaries = asyncio.run(store.list_customer_appointments("customer-1"))

    summary = summaries[0]
    assert summary.id == "apt-1"
    assert summary.status is AppointmentStatus.CONFIRMED
    assert summary.service_name == "Manicure"
    assert summary.service_price == Decimal("45")
    assert summary.partner_name == "Studio Bella"
    assert summary.partner_city == "São Paulo"
    assert summary.payment_status is PaymentStatus.REFUNDED
    params = session.requests[0]["params"]
    assert params["user_id"] == "eq.customer-1"
    assert params["order"] == "date_time.desc"
    assert "services(name,price)" in params["select"]
    assert "partners(business_name,city)" in params["select"]
    assert "payments(status" in params["select"]


def test_appointment_without_payment_has_no_payment_status():
    store, _ = _store(_response(200, [{**APPOINTMENT_ROW, "services": None, "partners": None, "payments": []}]))

    summary = asyncio.run(store.list_customer_appointments("customer-1"))[0]

    assert summary.payment_status is None
    assert summary.service_price is None
    assert summary.partner_name == ""


def test_search_partners_without_filters_lists_active_by_rating():
    store, session = _store(
        _response(200, [{"id": "studio-bella", "business_name": "Studio Bella", "rating": 4.8}])
    )

    found = asyncio.run(store.search_partners())

    assert [partner.id for partner in found] == ["studio-bella"]
    params = session.requests[0]["params"]
    assert ("is_active", "eq.true") in params
    assert ("order", "rating.desc.nullslast") in params
    assert not any(key in ("or", "and") for key, _ in params)


def test_search_partners_by_text():
    store, session = _store(_response(200, []))

    asyncio.run(store.search_partners(text="bella"))

    params = session.requests[0]["params"]
    assert ("or", "(business_name.ilike.*bella*,category.ilike.*bella*)") in params


def test_search_partners_by_text_and_location():
    store, session = _store(_response(200, []))

    asyncio.run(store.search_partners(text="corte, (barba)", location="Pinheiros"))

    params = session.requests[0]["params"]
    assert (
        "and",
        "(or(business_name.ilike.*corte barba*,category.ilike.*corte barba*),"
        "or(city.ilike.*Pinheiros*,neighborhood.ilike.*Pinheiros*))",
    ) in params
