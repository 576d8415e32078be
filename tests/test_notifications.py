"""Tests for guest booking emails."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from roomstay.events import Event, EventType
from roomstay.models.booking import Booking, BookingStatus
from roomstay.modules.notifications import BookingNotifier
from roomstay.modules.notifications.mailer import format_rupiah


@pytest.fixture
def notifier(db_session: Session, noop_close):
    with patch("roomstay.modules.notifications.mailer.get_session", return_value=db_session):
        yield BookingNotifier()


def test_format_rupiah():
    assert format_rupiah(Decimal("3600000.00")) == "Rp 3.600.000"
    assert format_rupiah(850000) == "Rp 850.000"


def test_render_confirmation(notifier, sample_booking: Booking):
    body = notifier.render("booking_confirmed.txt", sample_booking)
    assert "Siti Rahma" in body
    assert sample_booking.booking_number in body
    assert "Villa Test" in body
    assert "Deluxe Room" in body
    assert "Rp 4.000.000" in body


def test_render_cancellation_reason(notifier, db_session: Session, sample_booking: Booking):
    sample_booking.status = BookingStatus.CANCELLED
    sample_booking.cancellation_reason = "PAYMENT_TIMEOUT"
    db_session.commit()

    body = notifier.render("booking_cancelled.txt", sample_booking)
    assert "has been cancelled" in body
    assert "payment deadline passed" in body


def test_confirmation_sent_once(notifier, db_session: Session, sample_booking: Booking):
    with patch.object(notifier, "_send_email", return_value=True) as send:
        assert notifier.send_confirmation(sample_booking.id) is True
        assert notifier.send_confirmation(sample_booking.id) is False

    send.assert_called_once()
    assert send.call_args.args[0] == "siti@example.com"
    db_session.refresh(sample_booking)
    assert sample_booking.confirmation_email_sent is True


def test_confirmation_not_marked_when_smtp_unconfigured(
    notifier, db_session: Session, sample_booking: Booking, monkeypatch
):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    assert notifier.send_confirmation(sample_booking.id) is False
    db_session.refresh(sample_booking)
    assert sample_booking.confirmation_email_sent is False


def test_send_email_via_smtp(notifier, monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "2525")
    monkeypatch.setenv("SMTP_USER", "bookings@example.com")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")

    with patch("roomstay.modules.notifications.mailer.smtplib.SMTP") as smtp_cls:
        server = MagicMock()
        smtp_cls.return_value.__enter__.return_value = server
        assert notifier._send_email("guest@example.com", "Hello", "Body") is True

    smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=30)
    server.login.assert_called_once_with("bookings@example.com", "secret")
    sent = server.send_message.call_args.args[0]
    assert sent["To"] == "guest@example.com"


def test_event_handlers_route_to_senders(notifier, event_bus):
    with (
        patch("roomstay.modules.notifications.mailer.event_bus", event_bus),
        patch.object(notifier, "send_confirmation") as confirm,
        patch.object(notifier, "send_cancellation") as cancel,
    ):
        notifier.setup_event_handlers()
        event_bus.publish(Event(event_type=EventType.BOOKING_CONFIRMED, data={"booking_id": 3}))
        event_bus.publish(Event(event_type=EventType.BOOKING_CANCELLED, data={"booking_id": 4}))

    confirm.assert_called_once_with(3)
    cancel.assert_called_once_with(4)


def test_event_emails_are_queued_on_scheduler(db_session: Session, noop_close, event_bus):
    scheduler = MagicMock()
    notifier = BookingNotifier(scheduler)
    with (
        patch("roomstay.modules.notifications.mailer.event_bus", event_bus),
        patch("roomstay.modules.notifications.mailer.smtplib.SMTP") as smtp_cls,
    ):
        notifier.setup_event_handlers()
        event_bus.publish(Event(event_type=EventType.BOOKING_CONFIRMED, data={"booking_id": 3}))

    smtp_cls.assert_not_called()
    scheduler.add_job.assert_called_once()
    call = scheduler.add_job.call_args
    assert call.args[0] == notifier.send_confirmation
    assert call.kwargs["args"] == [3]
    assert call.kwargs["id"] == "send_confirmation-3"
    assert call.kwargs["replace_existing"] is True


def test_checkin_reminder_sent_once(notifier, db_session: Session, sample_booking: Booking):
    sample_booking.status = BookingStatus.CONFIRMED
    db_session.commit()
    day_before = sample_booking.check_in_date - timedelta(days=1)

    with patch.object(notifier, "_send_email", return_value=True) as send:
        assert notifier.send_checkin_reminders(day_before) == [sample_booking.id]
        assert notifier.send_checkin_reminders(day_before) == []

    send.assert_called_once()
    to_address, subject, body = send.call_args.args
    assert to_address == "siti@example.com"
    assert subject == "Check-in reminder - BK-TEST-00001"
    assert "Jl. Test No. 1, Jakarta" in body
    db_session.refresh(sample_booking)
    assert sample_booking.checkin_reminder_sent is True


def test_checkin_reminder_skips_unconfirmed_and_far_stays(
    notifier, db_session: Session, sample_booking: Booking
):
    far_ahead = sample_booking.check_in_date - timedelta(days=3)
    with patch.object(notifier, "_send_email", return_value=True) as send:
        # Still waiting for payment
        assert notifier.send_checkin_reminders(sample_booking.check_in_date) == []
        sample_booking.status = BookingStatus.CONFIRMED
        db_session.commit()
        assert notifier.send_checkin_reminders(far_ahead) == []
    send.assert_not_called()


def test_checkin_reminder_retried_when_not_sent(
    notifier, db_session: Session, sample_booking: Booking, monkeypatch
):
    sample_booking.status = BookingStatus.CONFIRMED
    db_session.commit()
    monkeypatch.delenv("SMTP_HOST", raising=False)

    assert notifier.send_checkin_reminders(sample_booking.check_in_date) == []
    db_session.refresh(sample_booking)
    assert sample_booking.checkin_reminder_sent is False
