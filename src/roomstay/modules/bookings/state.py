"""Booking lifecycle: allowed status transitions and the payment deadline guard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from roomstay.clock import utcnow
from roomstay.errors import InvalidTransitionError
from roomstay.models.booking import Booking, BookingStatus, CancellationReason

logger = logging.getLogger(__name__)

S = BookingStatus

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.WAITING_PAYMENT: frozenset({S.WAITING_CONFIRMATION, S.CONFIRMED, S.CANCELLED}),
    S.WAITING_CONFIRMATION: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED}),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
}


@dataclass
class StatusChange:
    booking_id: int
    booking_number: str
    old_status: BookingStatus
    new_status: BookingStatus
    reason: str | None = None


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[BookingStatus(current)]


def transition(
    booking: Booking,
    target: BookingStatus,
    *,
    reason: CancellationReason | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> StatusChange:
    """Move a booking to ``target`` or raise InvalidTransitionError."""
    current = BookingStatus(booking.status)
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Booking {booking.booking_number} cannot move from {current.value} to {target.value}"
        )
    now = now or utcnow()
    booking.status = target
    booking.updated_at = now
    if target == BookingStatus.CANCELLED:
        booking.cancelled_at = now
        booking.cancellation_reason = reason.value if reason else None
        booking.cancellation_note = note
    logger.info(
        "Booking %s: %s -> %s%s",
        booking.booking_number, current.value, target.value,
        f" ({reason.value})" if reason else "",
    )
    return StatusChange(
        booking_id=booking.id,
        booking_number=booking.booking_number,
        old_status=current,
        new_status=target,
        reason=reason.value if reason else None,
    )


def expire_if_overdue(booking: Booking, now: datetime | None = None) -> StatusChange | None:
    """Cancel a WAITING_PAYMENT booking whose payment deadline has passed."""
    now = now or utcnow()
    if not booking.is_payment_overdue(now):
        return None
    return transition(
        booking, BookingStatus.CANCELLED, reason=CancellationReason.PAYMENT_TIMEOUT, now=now
    )
