"""Guest email notifications: confirmation, cancellation and check-in reminders."""

from __future__ import annotations

import logging
import smtplib
from datetime import date, timedelta
from decimal import Decimal
from email.mime.text import MIMEText
from typing import Callable

from apscheduler.schedulers.base import BaseScheduler
from jinja2 import DictLoader, Environment, select_autoescape
from sqlalchemy.orm import joinedload

from roomstay.clock import today
from roomstay.config import get_env
from roomstay.database import get_session
from roomstay.events import Event, EventType, event_bus
from roomstay.models.booking import Booking, BookingStatus
from roomstay.models.property import Room

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30  # seconds

TEMPLATES = {
    "booking_confirmed.txt": (
        "Hi {{ guest_name }},\n\n"
        "Your booking {{ booking_number }} at {{ property_name }} is confirmed.\n\n"
        "Room: {{ room_name }}\n"
        "Check-in: {{ check_in }}\n"
        "Check-out: {{ check_out }} ({{ nights }} nights)\n"
        "Guests: {{ num_guests }}\n"
        "Total paid: {{ total_price }}\n\n"
        "We look forward to hosting you!\n"
    ),
    "booking_cancelled.txt": (
        "Hi {{ guest_name }},\n\n"
        "Your booking {{ booking_number }} at {{ property_name }} "
        "({{ check_in }} to {{ check_out }}) has been cancelled.\n"
        "{% if reason %}\nReason: {{ reason }}\n{% endif %}"
        "\nIf you have any questions, reply to this email.\n"
    ),
    "checkin_reminder.txt": (
        "Hi {{ guest_name }},\n\n"
        "This is a reminder that your stay at {{ property_name }} starts on {{ check_in }}.\n\n"
        "Room: {{ room_name }}\n"
        "Address: {{ address }}{% if city %}, {{ city }}{% endif %}\n"
        "Booking: {{ booking_number }}\n\n"
        "Have a safe trip!\n"
    ),
}

CANCELLATION_REASONS = {
    "PAYMENT_TIMEOUT": "The payment deadline passed before payment was received.",
    "PAYMENT_FAILED": "The payment was declined, expired or cancelled.",
    "USER_CANCELLED": "You cancelled the booking.",
    "TENANT_CANCELLED": "The property owner cancelled the booking.",
    "TENANT_REJECTED": "The property owner could not verify your payment.",
}


def format_rupiah(amount: Decimal | float | int) -> str:
    """Rp 3.600.000"""
    whole = int(Decimal(amount).quantize(Decimal(1)))
    return "Rp " + f"{whole:,}".replace(",", ".")


class BookingNotifier:
    """Emails guests about their bookings.

    With a scheduler attached, emails triggered by booking events are sent
    from a one-off scheduler job instead of inside the publishing request.
    """

    def __init__(self, scheduler: BaseScheduler | None = None) -> None:
        self._scheduler = scheduler
        self._jinja_env = Environment(
            loader=DictLoader(TEMPLATES),
            autoescape=select_autoescape(default=False),
        )

    def setup_event_handlers(self) -> None:
        event_bus.subscribe(EventType.BOOKING_CONFIRMED, self._on_booking_confirmed)
        event_bus.subscribe(EventType.BOOKING_CANCELLED, self._on_booking_cancelled)

    def _on_booking_confirmed(self, event: Event) -> None:
        if event.booking_id:
            self._dispatch(self.send_confirmation, event.booking_id)

    def _on_booking_cancelled(self, event: Event) -> None:
        if event.booking_id:
            self._dispatch(self.send_cancellation, event.booking_id)

    def _dispatch(self, send: Callable[[int], bool], booking_id: int) -> None:
        if self._scheduler is None:
            send(booking_id)
            return
        self._scheduler.add_job(
            send,
            args=[booking_id],
            id=f"{send.__name__}-{booking_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )

    def send_confirmation(self, booking_id: int) -> bool:
        """Send the confirmation email once per booking."""
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if not booking:
                logger.warning("Booking %s not found, skipping confirmation email", booking_id)
                return False
            if booking.confirmation_email_sent:
                logger.debug("Confirmation already sent for booking %s", booking.booking_number)
                return False

            body = self.render("booking_confirmed.txt", booking)
            subject = f"Booking confirmed - {booking.booking_number}"
            if not self._send_email(booking.guest_email, subject, body):
                return False
            booking.confirmation_email_sent = True
            session.commit()
            return True
        finally:
            session.close()

    def send_cancellation(self, booking_id: int) -> bool:
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if not booking:
                return False
            body = self.render("booking_cancelled.txt", booking)
            subject = f"Booking cancelled - {booking.booking_number}"
            return self._send_email(booking.guest_email, subject, body)
        finally:
            session.close()

    def send_checkin_reminders(self, as_of: date | None = None) -> list[int]:
        """Remind guests of confirmed stays starting today or tomorrow.

        Each booking is reminded once; ones missed by an earlier run are
        picked up by the next.
        """
        as_of = as_of or today()
        session = get_session()
        sent: list[int] = []
        try:
            bookings = (
                session.query(Booking)
                .options(joinedload(Booking.room).joinedload(Room.prop))
                .filter(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.check_in_date >= as_of,
                    Booking.check_in_date <= as_of + timedelta(days=1),
                    Booking.checkin_reminder_sent.is_(False),
                )
                .order_by(Booking.check_in_date, Booking.id)
                .all()
            )
            for booking in bookings:
                body = self.render("checkin_reminder.txt", booking)
                subject = f"Check-in reminder - {booking.booking_number}"
                if not self._send_email(booking.guest_email, subject, body):
                    continue
                booking.checkin_reminder_sent = True
                session.commit()
                sent.append(booking.id)
        finally:
            session.close()
        if sent:
            logger.info("Sent %d check-in reminders", len(sent))
        return sent

    def render(self, template_name: str, booking: Booking) -> str:
        room = booking.room
        context = {
            "guest_name": booking.guest_name or "Guest",
            "booking_number": booking.booking_number,
            "property_name": room.prop.name,
            "address": room.prop.address,
            "city": room.prop.city,
            "room_name": room.name,
            "check_in": booking.check_in_date.strftime("%d %B %Y"),
            "check_out": booking.check_out_date.strftime("%d %B %Y"),
            "nights": booking.nights,
            "num_guests": booking.num_guests,
            "total_price": format_rupiah(booking.total_price),
            "reason": CANCELLATION_REASONS.get(booking.cancellation_reason or "", ""),
        }
        return self._jinja_env.get_template(template_name).render(**context)

    def _send_email(self, to_address: str | None, subject: str, body: str) -> bool:
        """Send a plain-text email via SMTP. Returns False when it cannot be attempted."""
        smtp_host = get_env("SMTP_HOST")
        smtp_port = int(get_env("SMTP_PORT", "587"))
        smtp_user = get_env("SMTP_USER")
        smtp_password = get_env("SMTP_PASSWORD")

        if not all([smtp_host, smtp_user, smtp_password]):
            logger.warning("SMTP not configured, cannot send email")
            return False
        if not to_address:
            logger.warning("No recipient address for %r", subject)
            return False

        email_msg = MIMEText(body)
        email_msg["Subject"] = subject
        email_msg["From"] = smtp_user
        email_msg["To"] = to_address

        try:
            with smtplib.SMTP(smtp_host, smtp_port, timeout=SMTP_TIMEOUT) as server:
                server.starttls()
                server.login(smtp_user, smtp_password)
                server.send_message(email_msg)
            logger.info("Email sent to %s", to_address)
            return True
        except Exception:
            logger.exception("Failed to send email to %s", to_address)
            raise
