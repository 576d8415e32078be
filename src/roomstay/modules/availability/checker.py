"""Room availability: detects bookings that hold a room over a date range."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from roomstay.clock import iter_nights, utcnow
from roomstay.database import get_session
from roomstay.errors import NotFoundError, ValidationError
from roomstay.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from roomstay.models.property import Property, Room

logger = logging.getLogger(__name__)

MAX_CALENDAR_DAYS = 366


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open [start, end) overlap. Back-to-back stays do not overlap."""
    return a_start < b_end and a_end > b_start


def check_window(start: date, end: date) -> None:
    """Validate an inclusive calendar window."""
    if end < start:
        raise ValidationError("End date must not be before start date")
    if (end - start).days > MAX_CALENDAR_DAYS:
        raise ValidationError("Calendar window is limited to one year")


@dataclass
class DayOccupancy:
    date: date
    room_id: int
    status: str  # available, booked, checkin, checkout
    booking_id: int | None = None
    guest_name: str | None = None

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "roomId": self.room_id,
            "status": self.status,
            "bookingId": self.booking_id,
            "guestName": self.guest_name,
        }


def holding_bookings(session: Session, now: datetime) -> Query:
    """Bookings that currently hold their room.

    WAITING_PAYMENT bookings past their deadline no longer hold the room,
    even if the expiry sweep has not cancelled them yet.
    """
    return session.query(Booking).filter(
        Booking.status.in_(ACTIVE_STATUSES),
        or_(
            Booking.status != BookingStatus.WAITING_PAYMENT,
            Booking.payment_deadline >= now,
        ),
    )


class AvailabilityChecker:
    """Answers whether a room is free for a stay."""

    def is_available(self, room_id: int, check_in: date, check_out: date) -> bool:
        session = get_session()
        try:
            return not self.find_conflicts(session, room_id, check_in, check_out)
        finally:
            session.close()

    def find_conflicts(
        self,
        session: Session,
        room_id: int,
        check_in: date,
        check_out: date,
        *,
        now: datetime | None = None,
    ) -> list[Booking]:
        """Return holding bookings of the room overlapping [check_in, check_out)."""
        conflicts = (
            holding_bookings(session, now or utcnow())
            .filter(
                Booking.room_id == room_id,
                Booking.check_in_date < check_out,
                Booking.check_out_date > check_in,
            )
            .order_by(Booking.check_in_date)
            .all()
        )
        if conflicts:
            logger.debug(
                "Room %s has %d conflicting bookings for %s..%s",
                room_id, len(conflicts), check_in, check_out,
            )
        return conflicts

    def booked_days(self, room_id: int, start: date, end: date) -> set[date]:
        """Nights within the inclusive window [start, end] on which the room is held."""
        check_window(start, end)
        session = get_session()
        try:
            if not session.get(Room, room_id):
                raise NotFoundError("Room not found")
            window_end = end + timedelta(days=1)
            booked: set[date] = set()
            for booking in self.find_conflicts(session, room_id, start, window_end):
                booked.update(
                    day
                    for day in iter_nights(booking.check_in_date, booking.check_out_date)
                    if start <= day <= end
                )
            return booked
        finally:
            session.close()

    def occupancy(
        self, property_id: int, start: date, end: date, *, room_id: int | None = None
    ) -> tuple[Property, list[DayOccupancy]]:
        """Per-room, per-day occupancy of a property over [start, end].

        A day is ``checkin`` or ``checkout`` when a stay starts or ends on it,
        ``booked`` when it falls inside a stay, ``available`` otherwise.
        Arrivals win over departures on turnover days.
        """
        check_window(start, end)
        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if not prop:
                raise NotFoundError("Property not found")
            rooms = [r for r in prop.rooms if room_id is None or r.id == room_id]
            if room_id is not None and not rooms:
                raise NotFoundError("Room not found")

            bookings = (
                holding_bookings(session, utcnow())
                .filter(
                    Booking.room_id.in_([r.id for r in rooms]),
                    Booking.check_in_date <= end,
                    Booking.check_out_date >= start,
                )
                .order_by(Booking.check_in_date, Booking.id)
                .all()
            )

            days: list[DayOccupancy] = []
            for room in rooms:
                room_bookings = [b for b in bookings if b.room_id == room.id]
                for day in iter_nights(start, end + timedelta(days=1)):
                    days.append(_day_occupancy(room.id, day, room_bookings))
            return prop, days
        finally:
            session.close()


def _day_occupancy(room_id: int, day: date, bookings: list[Booking]) -> DayOccupancy:
    for status, matches in (
        ("checkin", lambda b: b.check_in_date == day),
        ("checkout", lambda b: b.check_out_date == day),
        ("booked", lambda b: b.check_in_date < day < b.check_out_date),
    ):
        booking = next((b for b in bookings if matches(b)), None)
        if booking:
            return DayOccupancy(
                date=day,
                room_id=room_id,
                status=status,
                booking_id=booking.id,
                guest_name=booking.guest_name,
            )
    return DayOccupancy(date=day, room_id=room_id, status="available")
