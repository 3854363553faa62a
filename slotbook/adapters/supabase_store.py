"""
Record store client for the hosted backend's REST interface (PostgREST).
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Collection, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import RecordStoreError, SlotAlreadyBookedError
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

logger = logging.getLogger(__name__)

# Postgres error code for a unique constraint violation.
UNIQUE_VIOLATION = "23505"

PARTNER_COLUMNS = "id,business_name,category,city,neighborhood,rating,total_reviews,is_active"

# Embedded resources shown in the customer's appointment list.
APPOINTMENT_SUMMARY_SELECT = (
    "*,services(name,price),partners(business_name,city),payments(status,created_at)"
)

# Characters with a meaning inside PostgREST logic trees.
_RESERVED_FILTER_CHARS = str.maketrans("", "", ",()\"*")


class SupabaseRecordStore:
    """
    Client for the table endpoints under ``/rest/v1``.

    Filters use the PostgREST query syntax (``eq.``, ``gte.``, ``in.()``).
    Blocking HTTP calls run in a worker thread so the async services can
    await them.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        timeout_seconds: int = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the REST client.

        Args:
            url: Base URL of the hosted backend
            anon_key: Public API key of the project
            access_token: Customer access token; row-level security uses it
            timeout_seconds: HTTP timeout per request
            session: Optional requests session (useful for tests)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.timeout_seconds = timeout_seconds
        self.http = session or requests.Session()
        self.headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token or anon_key}",
            "Content-Type": "application/json",
        }

    async def get_partner(self, partner_id: str) -> Optional[Partner]:
        rows = await self._get(
            "partners",
            {
                "select": PARTNER_COLUMNS,
                "id": f"eq.{partner_id}",
            },
        )
        return self._parse_partner(rows[0]) if rows else None

    async def search_partners(
        self,
        text: Optional[str] = None,
        location: Optional[str] = None,
    ) -> List[Partner]:
        groups = []
        if text:
            groups.append(self._ilike_any(text, "business_name", "category"))
        if location:
            groups.append(self._ilike_any(location, "city", "neighborhood"))

        params = [
            ("select", PARTNER_COLUMNS),
            ("is_active", "eq.true"),
            ("order", "rating.desc.nullslast"),
        ]
        if len(groups) == 1:
            params.append(("or", f"({groups[0]})"))
        elif groups:
            params.append(("and", "(" + ",".join(f"or({group})" for group in groups) + ")"))

        rows = await self._get("partners", params)
        return [self._parse_partner(row) for row in rows]

    async def get_service(self, service_id: str) -> Optional[Service]:
        rows = await self._get(
            "services",
            {
                "select": "id,partner_id,name,description,price,duration",
                "id": f"eq.{service_id}",
            },
        )
        return self._parse_service(rows[0]) if rows else None

    async def list_partner_services(self, partner_id: str) -> List[Service]:
        rows = await self._get(
            "services",
            {
                "select": "id,partner_id,name,description,price,duration",
                "partner_id": f"eq.{partner_id}",
                "order": "price.asc",
            },
        )
        return [self._parse_service(row) for row in rows]

    async def list_appointment_times(
        self,
        partner_id: str,
        start: DateTime,
        end: DateTime,
        statuses: Collection[AppointmentStatus],
    ) -> List[DateTime]:
        status_list = ",".join(sorted(status.value for status in statuses))
        params = [
            ("select", "date_time"),
            ("partner_id", f"eq.{partner_id}"),
            ("date_time", f"gte.{start.in_timezone('UTC').to_iso8601_string()}"),
            ("date_time", f"lte.{end.in_timezone('UTC').to_iso8601_string()}"),
            ("status", f"in.({status_list})"),
        ]
        rows = await self._get("appointments", params)
        return [self._parse_datetime(row["date_time"]) for row in rows]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        rows = await self._get(
            "appointments",
            {"select": "*", "id": f"eq.{appointment_id}"},
        )
        return self._parse_appointment(rows[0]) if rows else None

    async def list_customer_appointments(self, user_id: str) -> List[AppointmentSummary]:
        rows = await self._get(
            "appointments",
            {
                "select": APPOINTMENT_SUMMARY_SELECT,
                "user_id": f"eq.{user_id}",
                "order": "date_time.desc",
            },
        )
        return [self._parse_summary(row) for row in rows]

    async def insert_appointment(
        self,
        *,
        user_id: str,
        service_id: str,
        partner_id: str,
        date_time: DateTime,
        status: AppointmentStatus,
    ) -> Appointment:
        row = await self._insert(
            "appointments",
            {
                "user_id": user_id,
                "service_id": service_id,
                "partner_id": partner_id,
                "date_time": date_time.in_timezone("UTC").to_iso8601_string(),
                "status": status.value,
            },
        )
        return self._parse_appointment(row)

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
        row = await self._insert(
            "payments",
            {
                "appointment_id": appointment_id,
                "user_id": user_id,
                "method": method.value,
                "amount": str(amount),
                "status": status.value,
                "pix_code": pix_code,
            },
        )
        return self._parse_payment(row)

    async def update_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
    ) -> None:
        await self._patch("appointments", appointment_id, {"status": status.value})

    async def update_payment_status(self, payment_id: str, status: PaymentStatus) -> None:
        await self._patch("payments", payment_id, {"status": status.value})

    async def _get(self, table: str, params: Any) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._request, "GET", table, params, None, {})

    async def _insert(self, table: str, body: Dict[str, Any]) -> Dict[str, Any]:
        rows = await asyncio.to_thread(
            self._request,
            "POST",
            table,
            None,
            body,
            {"Prefer": "return=representation"},
        )
        if not rows:
            raise RecordStoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def _patch(self, table: str, record_id: str, body: Dict[str, Any]) -> None:
        rows = await asyncio.to_thread(
            self._request,
            "PATCH",
            table,
            {"id": f"eq.{record_id}"},
            body,
            {"Prefer": "return=representation"},
        )
        if not rows:
            raise RecordStoreError(f"No {table} row with id {record_id} was updated")

    def _request(
        self,
        method: str,
        table: str,
        params: Any,
        body: Optional[Dict[str, Any]],
        extra_headers: Dict[str, str],
    ) -> List[Dict[str, Any]]:
        """
        Perform one HTTP call and return the decoded row list.

        Raises:
            SlotAlreadyBookedError: On a unique constraint violation
            RecordStoreError: On any other transport or HTTP failure
        """
        url = f"{self.base_url}/{table}"
        logger.debug("%s %s params=%s", method, url, params)

        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=body,
                headers={**self.headers, **extra_headers},
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise RecordStoreError(f"Request to {table} failed: {exc}") from exc

        if self._error_code(response) == UNIQUE_VIOLATION:
            raise SlotAlreadyBookedError(
                f"Conflicting {table} row: {self._error_message(response)}"
            )

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise RecordStoreError(
                f"Request to {table} failed: {self._error_message(response)}"
            ) from exc

        if not response.content:
            return []

        try:
            data = response.json()
        except ValueError as exc:
            raise RecordStoreError(f"Invalid JSON from {table}: {exc}") from exc

        return data if isinstance(data, list) else [data]

    @staticmethod
    def _ilike_any(term: str, *columns: str) -> str:
        value = term.translate(_RESERVED_FILTER_CHARS).strip()
        return ",".join(f"{column}.ilike.*{value}*" for column in columns)

    @staticmethod
    def _error_code(response: requests.Response) -> Optional[str]:
        if response.ok:
            return None
        try:
            return response.json().get("code")
        except (ValueError, AttributeError):
            return None

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json().get("message") or f"HTTP {response.status_code}"
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}"

    def _parse_datetime(self, value: str) -> DateTime:
        dt = pendulum.parse(value)
        if isinstance(dt, DateTime):
            return dt
        raise RecordStoreError(f"Could not parse datetime: {value}")

    def _parse_partner(self, row: Dict[str, Any]) -> Partner:
        return Partner(
            id=row["id"],
            business_name=row["business_name"],
            category=row.get("category") or "",
            city=row.get("city") or "",
            neighborhood=row.get("neighborhood"),
            rating=row.get("rating"),
            total_reviews=row.get("total_reviews") or 0,
            is_active=row.get("is_active", True),
        )

    def _parse_service(self, row: Dict[str, Any]) -> Service:
        return Service(
            id=row["id"],
            partner_id=row["partner_id"],
            name=row["name"],
            price=Decimal(str(row["price"])),
            duration=int(row["duration"]),
            description=row.get("description"),
        )

    def _parse_appointment(self, row: Dict[str, Any]) -> Appointment:
        return Appointment(
            id=row["id"],
            user_id=row["user_id"],
            partner_id=row["partner_id"],
            service_id=row["service_id"],
            date_time=self._parse_datetime(row["date_time"]),
            status=AppointmentStatus(row["status"]),
            created_at=self._parse_datetime(row["created_at"]) if row.get("created_at") else None,
            updated_at=self._parse_datetime(row["updated_at"]) if row.get("updated_at") else None,
        )

    def _parse_summary(self, row: Dict[str, Any]) -> AppointmentSummary:
        service = row.get("services") or {}
        partner = row.get("partners") or {}
        payments = sorted(
            row.get("payments") or [],
            key=lambda payment: payment.get("created_at") or "",
        )
        return AppointmentSummary(
            appointment=self._parse_appointment(row),
            service_name=service.get("name") or "",
            service_price=Decimal(str(service["price"])) if service.get("price") is not None else None,
            partner_name=partner.get("business_name") or "",
            partner_city=partner.get("city") or "",
            payment_status=PaymentStatus(payments[-1]["status"]) if payments else None,
        )

    def _parse_payment(self, row: Dict[str, Any]) -> Payment:
        return Payment(
            id=row["id"],
            appointment_id=row["appointment_id"],
            user_id=row["user_id"],
            method=PaymentMethod(row["method"]),
            amount=Decimal(str(row["amount"])),
            status=PaymentStatus(row["status"]),
            pix_code=row.get("pix_code"),
            transaction_id=row.get("transaction_id"),
            created_at=self._parse_datetime(row["created_at"]) if row.get("created_at") else None,
        )
