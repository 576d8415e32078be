"""Booking creation, tenant/guest actions, and lifecycle sweeps."""

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy.orm import Session, joinedload

from roomstay.clock import today, utcnow
from roomstay.config import get_booking_setting
from roomstay.database import get_session
from roomstay.errors import (
    InvalidTransitionError,
    NotFoundError,
    RoomUnavailableError,
    ValidationError,
)
from roomstay.events import Event, EventType, event_bus
from roomstay.models.booking import Booking, BookingStatus, CancellationReason
from roomstay.models.property import Room
from roomstay.modules.availability import AvailabilityChecker
from roomstay.modules.bookings.state import StatusChange, expire_if_overdue, transition
from roomstay.modules.pricing import PricingEngine

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_booking_number() -> str:
    """BK-<base36 millis>-<5 random chars>. Also used as the gateway order id."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"BK-{stamp}-{suffix}"


def payment_window() -> timedelta:
    return timedelta(minutes=int(get_booking_setting("payment_window_minutes", 60)))


def publish_status_changes(changes: Iterable[StatusChange]) -> None:
    """Announce status changes once their transaction is committed."""
    for change in changes:
        data = {
            "booking_id": change.booking_id,
            "booking_number": change.booking_number,
            "old_status": change.old_status.value,
            "new_status": change.new_status.value,
            "reason": change.reason,
        }
        event_bus.publish(Event(event_type=EventType.BOOKING_STATUS_CHANGED, data=data))
        if change.new_status == BookingStatus.CONFIRMED:
            event_bus.publish(Event(event_type=EventType.BOOKING_CONFIRMED, data=data))
        elif change.new_status == BookingStatus.CANCELLED:
            event_bus.publish(Event(event_type=EventType.BOOKING_CANCELLED, data=data))


def load_booking(session: Session, booking_id: int, *, for_update: bool = False) -> Booking:
    query = session.query(Booking).options(joinedload(Booking.room).joinedload(Room.prop))
    if for_update:
        query = query.with_for_update(of=Booking)
    booking = query.filter(Booking.id == booking_id).one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


class BookingManager:
    """Creates bookings and drives their lifecycle outside the payment gateway."""

    def __init__(
        self,
        availability: AvailabilityChecker | None = None,
        pricing: PricingEngine | None = None,
    ) -> None:
        self._availability = availability or AvailabilityChecker()
        self._pricing = pricing or PricingEngine()

    # --- Creation ---

    def create_booking(
        self,
        room_id: int,
        check_in: date,
        check_out: date,
        num_guests: int,
        *,
        guest_name: str | None = None,
        guest_email: str | None = None,
    ) -> Booking:
        """Create a WAITING_PAYMENT booking with its total price fixed.

        Availability check and insert share one transaction with the room row
        locked, so overlapping requests are serialized.
        """
        self._validate_stay(check_in, check_out, num_guests)
        now = utcnow()
        expired: list[StatusChange] = []
        session = get_session()
        try:
            room = (
                session.query(Room)
                .options(joinedload(Room.prop))
                .filter(Room.id == room_id)
                .with_for_update(of=Room)
                .one_or_none()
            )
            if not room:
                raise NotFoundError("Room not found")
            if num_guests > room.capacity:
                raise ValidationError(
                    f"Number of guests ({num_guests}) exceeds room capacity ({room.capacity})"
                )

            expired = self._expire_overdue(session, now, room_id=room_id)
            conflicts = self._availability.find_conflicts(
                session, room_id, check_in, check_out, now=now
            )
            if conflicts:
                session.commit()
                raise RoomUnavailableError("Room is not available for the selected dates")

            quote = self._pricing.quote_for_room(session, room, check_in, check_out)
            booking = Booking(
                booking_number=generate_booking_number(),
                room=room,
                guest_name=guest_name,
                guest_email=guest_email,
                check_in_date=check_in,
                check_out_date=check_out,
                num_guests=num_guests,
                total_price=quote.total,
                status=BookingStatus.WAITING_PAYMENT,
                payment_deadline=now + payment_window(),
                created_at=now,
                updated_at=now,
            )
            session.add(booking)
            session.commit()
            logger.info(
                "Created booking %s for room %s %s..%s total=%s",
                booking.booking_number, room_id, check_in, check_out, quote.total,
            )
        finally:
            session.close()
            publish_status_changes(expired)

        event_bus.publish(Event(
            event_type=EventType.BOOKING_CREATED,
            data={
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "room_id": room_id,
            },
        ))
        return booking

    def _validate_stay(self, check_in: date, check_out: date, num_guests: int) -> None:
        if check_out <= check_in:
            raise ValidationError("Check-out date must be after check-in date")
        if check_in < today():
            raise ValidationError("Check-in date cannot be in the past")
        if num_guests < 1:
            raise ValidationError("At least one guest is required")

    # --- Reads ---

    def get_booking(self, booking_id: int) -> Booking:
        """Fetch a booking, cancelling it first if its payment deadline has passed."""
        session = get_session()
        changes: list[StatusChange] = []
        try:
            booking = load_booking(session, booking_id)
            change = expire_if_overdue(booking)
            if change:
                session.commit()
                changes.append(change)
            return booking
        finally:
            session.close()
            publish_status_changes(changes)

    def list_bookings(
        self,
        *,
        status: BookingStatus | None = None,
        guest_email: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        session = get_session()
        changes: list[StatusChange] = []
        try:
            changes = self._expire_before_read(session)
            query = session.query(Booking)
            if status:
                query = query.filter(Booking.status == status)
            if guest_email:
                query = query.filter(Booking.guest_email == guest_email)
            if search:
                query = query.filter(Booking.booking_number.ilike(f"%{search}%"))
            return self._paginate(query, page, limit)
        finally:
            session.close()
            publish_status_changes(changes)

    def list_tenant_orders(
        self,
        *,
        status: BookingStatus | None = None,
        property_id: int | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        session = get_session()
        changes: list[StatusChange] = []
        try:
            changes = self._expire_before_read(session)
            query = session.query(Booking).join(Booking.room)
            if status:
                query = query.filter(Booking.status == status)
            if property_id:
                query = query.filter(Room.property_id == property_id)
            return self._paginate(query, page, limit)
        finally:
            session.close()
            publish_status_changes(changes)

    def _expire_before_read(self, session: Session) -> list[StatusChange]:
        changes = self._expire_overdue(session, utcnow())
        if changes:
            session.commit()
        return changes

    def _paginate(self, query, page: int, limit: int) -> tuple[list[Booking], int]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        total = query.count()
        items = (
            query.options(joinedload(Booking.room).joinedload(Room.prop))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    # --- Guest actions ---

    def cancel_by_user(self, booking_id: int) -> Booking:
        def action(booking: Booking) -> StatusChange:
            if booking.status not in (
                BookingStatus.WAITING_PAYMENT,
                BookingStatus.WAITING_CONFIRMATION,
            ):
                raise InvalidTransitionError(
                    "Booking can no longer be cancelled. Please contact the property owner."
                )
            return transition(
                booking, BookingStatus.CANCELLED, reason=CancellationReason.USER_CANCELLED
            )

        return self._act(booking_id, action)

    def submit_payment_proof(self, booking_id: int, proof: str) -> Booking:
        """Attach a manual transfer proof; the tenant then has to confirm it."""
        if not proof or not proof.strip():
            raise ValidationError("Payment proof is required")

        def action(booking: Booking) -> StatusChange:
            if booking.status != BookingStatus.WAITING_PAYMENT:
                raise InvalidTransitionError("Booking is not waiting for payment")
            booking.payment_proof = proof.strip()
            booking.payment_uploaded_at = utcnow()
            return transition(booking, BookingStatus.WAITING_CONFIRMATION)

        return self._act(booking_id, action)

    # --- Tenant actions ---

    def tenant_confirm(self, booking_id: int) -> Booking:
        def action(booking: Booking) -> StatusChange:
            if booking.status != BookingStatus.WAITING_CONFIRMATION:
                raise InvalidTransitionError(
                    "Only bookings waiting for confirmation can be confirmed"
                )
            return transition(booking, BookingStatus.CONFIRMED)

        return self._act(booking_id, action)

    def tenant_reject(self, booking_id: int, reason: str) -> Booking:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        def action(booking: Booking) -> StatusChange:
            if booking.status != BookingStatus.WAITING_CONFIRMATION:
                raise InvalidTransitionError(
                    "Only bookings waiting for confirmation can be rejected"
                )
            return transition(
                booking,
                BookingStatus.CANCELLED,
                reason=CancellationReason.TENANT_REJECTED,
                note=reason.strip(),
            )

        return self._act(booking_id, action)

    def tenant_cancel(self, booking_id: int, reason: str) -> Booking:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")

        def action(booking: Booking) -> StatusChange:
            if booking.status != BookingStatus.WAITING_PAYMENT:
                raise InvalidTransitionError(
                    "Only bookings waiting for payment can be cancelled by the tenant"
                )
            return transition(
                booking,
                BookingStatus.CANCELLED,
                reason=CancellationReason.TENANT_CANCELLED,
                note=reason.strip(),
            )

        return self._act(booking_id, action)

    def _act(self, booking_id: int, action: Callable[[Booking], StatusChange]) -> Booking:
        """Load, apply the deadline guard, run ``action``, commit, then publish."""
        session = get_session()
        changes: list[StatusChange] = []
        try:
            booking = load_booking(session, booking_id, for_update=True)
            overdue = expire_if_overdue(booking)
            if overdue:
                session.commit()
                changes.append(overdue)
                raise InvalidTransitionError(
                    "Payment deadline has passed. The booking has been cancelled."
                )
            changes.append(action(booking))
            session.commit()
            return booking
        finally:
            session.close()
            publish_status_changes(changes)

    # --- Sweeps ---

    def expire_overdue_bookings(self) -> list[int]:
        """Cancel every WAITING_PAYMENT booking past its deadline. Returns their ids."""
        session = get_session()
        changes: list[StatusChange] = []
        try:
            changes = self._expire_overdue(session, utcnow())
            session.commit()
        finally:
            session.close()
            publish_status_changes(changes)
        if changes:
            logger.info("Expired %d overdue bookings", len(changes))
        return [c.booking_id for c in changes]

    def complete_past_bookings(self, as_of: date | None = None) -> list[int]:
        """Mark CONFIRMED bookings whose check-out day has passed as COMPLETED."""
        as_of = as_of or today()
        session = get_session()
        changes: list[StatusChange] = []
        try:
            bookings = (
                session.query(Booking)
                .filter(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.check_out_date < as_of,
                )
                .all()
            )
            changes = [transition(b, BookingStatus.COMPLETED) for b in bookings]
            session.commit()
        finally:
            session.close()
            publish_status_changes(changes)
        if changes:
            logger.info("Completed %d past bookings", len(changes))
        return [c.booking_id for c in changes]

    def _expire_overdue(
        self, session: Session, now: datetime, room_id: int | None = None
    ) -> list[StatusChange]:
        query = session.query(Booking).filter(
            Booking.status == BookingStatus.WAITING_PAYMENT,
            Booking.payment_deadline < now,
        )
        if room_id is not None:
            query = query.filter(Booking.room_id == room_id)
        return [
            change
            for change in (expire_if_overdue(b, now) for b in query.all())
            if change
        ]
