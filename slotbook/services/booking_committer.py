"""
Turns a selected slot plus a payment method into persisted records.

The commit is three sequential store writes:

1. insert the appointment as ``pending``
2. insert the payment as ``paid`` (payment is simulated, there is no gateway)
3. move the appointment to ``confirmed``

The store offers no transaction spanning these calls. When step 2 or 3 fails
the earlier writes are compensated (appointment canceled, payment refunded)
so the customer is never left with a dangling pending booking. The committer
does not re-check conflicts; slot exclusivity is the store's job.
"""

from __future__ import annotations

import logging
import secrets
from typing import Callable, Optional

from ..domain.exceptions import (
    PaymentProcessingError,
    PaymentValidationError,
    RecordStoreError,
    SlotAlreadyBookedError,
    SlotUnavailableError,
)
from ..domain.models import (
    AppointmentStatus,
    BookingConfirmation,
    BookingContext,
    CardDetails,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ensure_appointment_transition,
    ensure_payment_transition,
)
from .record_store import RecordStoreProtocol

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Payment could not be processed. Please try again later."


def generate_pix_code() -> str:
    """Return a simulated PIX reference code."""
    return f"PIX{secrets.token_hex(8).upper()}"


class BookingCommitter:
    """Writes appointment and payment records for a confirmed selection."""

    def __init__(
        self,
        store: RecordStoreProtocol,
        pix_code_factory: Callable[[], str] = generate_pix_code,
    ) -> None:
        self._store = store
        self._pix_code_factory = pix_code_factory

    async def commit(
        self,
        *,
        customer_id: str,
        context: BookingContext,
        method: PaymentMethod,
        card: Optional[CardDetails] = None,
    ) -> BookingConfirmation:
        """
        Persist the booking and return its confirmation.

        Args:
            customer_id: Identity of the signed-in customer
            context: Selected partner, service and date-time
            method: Payment method chosen by the customer
            card: Card fields, required for credit card payments

        Returns:
            BookingConfirmation echoing the context

        Raises:
            PaymentValidationError: If required payment input is missing
            SlotUnavailableError: If the store rejects the slot as taken
            PaymentProcessingError: If any write fails
        """
        if not customer_id:
            raise ValueError("customer_id must not be empty")
        self._validate_payment_input(method, card)

        try:
            appointment = await self._store.insert_appointment(
                user_id=customer_id,
                service_id=context.service_id,
                partner_id=context.partner_id,
                date_time=context.date_time,
                status=AppointmentStatus.PENDING,
            )
        except SlotAlreadyBookedError as exc:
            logger.info(
                "Slot %s of partner %s was taken before commit: %s",
                context.date_time.to_iso8601_string(),
                context.partner_id,
                exc,
            )
            raise SlotUnavailableError(
                "The selected time is no longer available"
            ) from exc
        except RecordStoreError as exc:
            logger.error("Creating appointment failed: %s", exc)
            raise PaymentProcessingError(
                GENERIC_FAILURE_MESSAGE, step="create_appointment"
            ) from exc

        pix_code = self._pix_code_factory() if method is PaymentMethod.PIX else None

        try:
            payment = await self._store.insert_payment(
                appointment_id=appointment.id,
                user_id=customer_id,
                method=method,
                amount=context.price,
                status=PaymentStatus.PAID,
                pix_code=pix_code,
            )
        except RecordStoreError as exc:
            logger.error(
                "Recording payment for appointment %s failed: %s", appointment.id, exc
            )
            await self._cancel_appointment(appointment.id, AppointmentStatus.PENDING)
            raise PaymentProcessingError(
                GENERIC_FAILURE_MESSAGE,
                step="create_payment",
                appointment_id=appointment.id,
            ) from exc

        try:
            ensure_appointment_transition(
                AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED
            )
            await self._store.update_appointment_status(
                appointment.id, AppointmentStatus.CONFIRMED
            )
        except RecordStoreError as exc:
            logger.error("Confirming appointment %s failed: %s", appointment.id, exc)
            await self._refund_payment(payment)
            await self._cancel_appointment(appointment.id, AppointmentStatus.PENDING)
            raise PaymentProcessingError(
                GENERIC_FAILURE_MESSAGE,
                step="confirm_appointment",
                appointment_id=appointment.id,
            ) from exc

        logger.info(
            "Booked appointment %s for partner %s at %s",
            appointment.id,
            context.partner_id,
            context.date_time.to_iso8601_string(),
        )

        return BookingConfirmation(
            appointment_id=appointment.id,
            payment_id=payment.id,
            method=method,
            context=context,
            pix_code=pix_code,
        )

    @staticmethod
    def _validate_payment_input(
        method: PaymentMethod,
        card: Optional[CardDetails],
    ) -> None:
        if method is not PaymentMethod.CREDIT_CARD:
            return
        missing = (card or CardDetails()).missing_fields()
        if missing:
            raise PaymentValidationError(missing)

    async def _cancel_appointment(
        self,
        appointment_id: str,
        current: AppointmentStatus,
    ) -> None:
        ensure_appointment_transition(current, AppointmentStatus.CANCELED)
        try:
            await self._store.update_appointment_status(
                appointment_id, AppointmentStatus.CANCELED
            )
        except RecordStoreError as exc:
            logger.error(
                "Compensation failed: appointment %s is still %s: %s",
                appointment_id,
                current.value,
                exc,
            )

    async def _refund_payment(self, payment: Payment) -> None:
        ensure_payment_transition(payment.status, PaymentStatus.REFUNDED)
        try:
            await self._store.update_payment_status(payment.id, PaymentStatus.REFUNDED)
        except RecordStoreError as exc:
            logger.error(
                "Compensation failed: payment %s is still %s: %s",
                payment.id,
                payment.status.value,
                exc,
            )
