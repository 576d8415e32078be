"""Payment creation and reconciliation of gateway-reported transaction status."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from roomstay.clock import utcnow
from roomstay.config import get_env
from roomstay.database import get_session
from roomstay.errors import (
    InvalidSignatureError,
    InvalidTransitionError,
    NotFoundError,
    PaymentGatewayError,
)
from roomstay.events import Event, EventType, event_bus
from roomstay.models.booking import Booking, BookingStatus, CancellationReason
from roomstay.models.payment import PaymentNotification
from roomstay.modules.bookings.manager import load_booking, publish_status_changes
from roomstay.modules.bookings.state import (
    StatusChange,
    can_transition,
    expire_if_overdue,
    transition,
)
from roomstay.modules.payments.gateway import MidtransClient
from roomstay.modules.payments.signature import verify_signature

logger = logging.getLogger(__name__)

FAILED_STATUSES = frozenset({"deny", "expire", "cancel", "failure"})


def map_gateway_status(
    transaction_status: str | None, fraud_status: str | None
) -> BookingStatus | None:
    """Booking status implied by a gateway transaction status, or None if not actionable."""
    status = (transaction_status or "").lower()
    fraud = (fraud_status or "").lower() or None

    if status == "capture":
        if fraud == "accept":
            return BookingStatus.CONFIRMED
        if fraud == "challenge":
            return BookingStatus.WAITING_CONFIRMATION
        return None
    if status == "settlement":
        return BookingStatus.CONFIRMED if fraud in (None, "accept") else None
    if status == "pending":
        return BookingStatus.WAITING_CONFIRMATION
    if status in FAILED_STATUSES:
        return BookingStatus.CANCELLED
    return None


@dataclass
class ReconcileResult:
    booking_id: int
    booking_number: str
    outcome: str  # applied, unchanged, ignored
    old_status: BookingStatus
    new_status: BookingStatus
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "bookingId": self.booking_id,
            "bookingNumber": self.booking_number,
            "outcome": self.outcome,
            "oldStatus": self.old_status.value,
            "newStatus": self.new_status.value,
            "message": self.message,
        }


def reconcile(
    booking: Booking,
    transaction_status: str | None,
    fraud_status: str | None,
    *,
    transaction_id: str | None = None,
    now: datetime | None = None,
) -> tuple[ReconcileResult, list[StatusChange]]:
    """Apply a gateway-reported status to a booking.

    Illegal or non-actionable reports are recorded and ignored rather than raised:
    the gateway only needs an acknowledgement.
    """
    now = now or utcnow()
    old_status = BookingStatus(booking.status)
    changes: list[StatusChange] = []

    booking.gateway_status = transaction_status
    if transaction_id:
        booking.gateway_transaction_id = transaction_id

    overdue = expire_if_overdue(booking, now)
    if overdue:
        changes.append(overdue)

    target = map_gateway_status(transaction_status, fraud_status)
    current = BookingStatus(booking.status)

    if target is None:
        outcome, message = "ignored", f"Transaction status {transaction_status!r} is not actionable"
    elif current == target:
        outcome, message = "unchanged", f"Booking already {current.value}"
    elif not can_transition(current, target):
        outcome = "ignored"
        message = f"Cannot move booking from {current.value} to {target.value}"
        if overdue and target != BookingStatus.CANCELLED:
            logger.warning(
                "Gateway reported %s for %s after its payment deadline; booking stays cancelled",
                transaction_status, booking.booking_number,
            )
    else:
        reason = CancellationReason.PAYMENT_FAILED if target == BookingStatus.CANCELLED else None
        changes.append(transition(booking, target, reason=reason, now=now))
        outcome, message = "applied", f"Booking moved to {target.value}"

    if overdue and outcome != "applied":
        outcome = "applied"
        message = f"Payment deadline passed; booking cancelled. {message}"

    logger.info(
        "Reconciled %s with gateway status %s/%s: %s",
        booking.booking_number, transaction_status, fraud_status, outcome,
    )
    result = ReconcileResult(
        booking_id=booking.id,
        booking_number=booking.booking_number,
        outcome=outcome,
        old_status=old_status,
        new_status=BookingStatus(booking.status),
        message=message,
    )
    return result, changes


class PaymentService:
    """Creates gateway payments and reconciles their reported status."""

    def __init__(self, gateway: MidtransClient | None = None) -> None:
        self._gateway = gateway or MidtransClient()

    @property
    def server_key(self) -> str:
        return self._gateway.server_key

    def create_payment(self, booking_id: int) -> dict[str, Any]:
        """Open a Snap transaction for a booking that is still waiting for payment."""
        if not self._gateway.is_configured:
            raise PaymentGatewayError("Payment gateway credentials are not configured")

        session = get_session()
        changes: list[StatusChange] = []
        try:
            booking = load_booking(session, booking_id)
            overdue = expire_if_overdue(booking)
            if overdue:
                session.commit()
                changes.append(overdue)
                raise InvalidTransitionError(
                    "Payment deadline has passed. The booking has been cancelled."
                )
            if booking.status != BookingStatus.WAITING_PAYMENT:
                raise InvalidTransitionError(
                    f"Booking is not waiting for payment (status: {booking.status.value})"
                )
            order_id = booking.booking_number
            gross_amount = int(Decimal(booking.total_price).quantize(Decimal(1), ROUND_HALF_UP))
            room = booking.room
            item_name = f"{room.name} - {room.prop.name} ({booking.nights} nights)"
            customer = {
                "first_name": booking.guest_name or "Guest",
                "email": booking.guest_email or "",
            }
        finally:
            session.close()
            publish_status_changes(changes)

        app_url = get_env("APP_URL")
        transaction = self._gateway.create_transaction(
            order_id,
            gross_amount,
            customer=customer,
            items=[{
                "id": str(room.id),
                "price": gross_amount,
                "quantity": 1,
                "name": item_name[:50],
            }],
            finish_url=f"{app_url}/bookings/{order_id}/payment" if app_url else None,
        )
        return {
            "token": transaction.token,
            "redirectUrl": transaction.redirect_url,
            "bookingNumber": order_id,
            "grossAmount": gross_amount,
            "clientKey": self._gateway.client_key,
        }

    def handle_notification(self, payload: dict[str, Any]) -> ReconcileResult:
        """Verify and apply a gateway webhook notification.

        Every notification is logged, including ones with a bad signature.
        """
        order_id = _as_str(payload.get("order_id"))
        status_code = _as_str(payload.get("status_code"))
        gross_amount = _as_str(payload.get("gross_amount"))
        signature = _as_str(payload.get("signature_key"))
        transaction_status = _as_str(payload.get("transaction_status"))
        fraud_status = _as_str(payload.get("fraud_status"))
        transaction_id = _as_str(payload.get("transaction_id"))

        logger.info(
            "Payment notification received: order=%s status=%s fraud=%s code=%s",
            order_id, transaction_status, fraud_status, status_code,
        )

        session = get_session()
        changes: list[StatusChange] = []
        try:
            record = PaymentNotification(
                order_id=order_id,
                transaction_id=transaction_id,
                transaction_status=transaction_status,
                fraud_status=fraud_status,
                status_code=status_code,
                gross_amount=gross_amount,
                raw_payload=json.dumps(payload, default=str),
            )
            session.add(record)

            if not verify_signature(order_id, status_code, gross_amount, self.server_key, signature):
                record.outcome = "rejected"
                record.detail = "Invalid signature"
                session.commit()
                logger.warning("Rejected payment notification for %s: invalid signature", order_id)
                raise InvalidSignatureError("Invalid signature")
            record.signature_valid = True

            booking = (
                session.query(Booking)
                .filter(Booking.booking_number == order_id)
                .with_for_update()
                .one_or_none()
            )
            if not booking:
                record.outcome = "not_found"
                record.detail = "Booking not found"
                session.commit()
                logger.error("Payment notification for unknown order %s", order_id)
                raise NotFoundError("Booking not found")

            result, changes = reconcile(
                booking, transaction_status, fraud_status, transaction_id=transaction_id
            )
            record.outcome = result.outcome
            record.detail = result.message
            session.commit()
        finally:
            session.close()
            publish_status_changes(changes)

        event_bus.publish(Event(
            event_type=EventType.PAYMENT_NOTIFICATION,
            data={
                "booking_id": result.booking_id,
                "order_id": order_id,
                "transaction_status": transaction_status,
                "outcome": result.outcome,
            },
        ))
        return result

    def sync_status(self, booking_id: int) -> ReconcileResult:
        """Pull the transaction status from the gateway and apply it."""
        session = get_session()
        try:
            order_id = load_booking(session, booking_id).booking_number
        finally:
            session.close()

        status = self._gateway.get_status(order_id)
        if _as_str(status.get("status_code")) == "404":
            raise NotFoundError("No payment transaction found for this booking")

        session = get_session()
        changes: list[StatusChange] = []
        try:
            booking = load_booking(session, booking_id, for_update=True)
            result, changes = reconcile(
                booking,
                _as_str(status.get("transaction_status")),
                _as_str(status.get("fraud_status")),
                transaction_id=_as_str(status.get("transaction_id")),
            )
            session.commit()
            return result
        finally:
            session.close()
            publish_status_changes(changes)


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
