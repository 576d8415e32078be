"""Booking model and status enum."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomstay.clock import utcnow
from roomstay.database import Base


class BookingStatus(str, Enum):
    WAITING_PAYMENT = "WAITING_PAYMENT"
    WAITING_CONFIRMATION = "WAITING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# Statuses that hold the room for their date range
ACTIVE_STATUSES = (
    BookingStatus.WAITING_PAYMENT,
    BookingStatus.WAITING_CONFIRMATION,
    BookingStatus.CONFIRMED,
)


class CancellationReason(str, Enum):
    PAYMENT_TIMEOUT = "PAYMENT_TIMEOUT"
    USER_CANCELLED = "USER_CANCELLED"
    TENANT_CANCELLED = "TENANT_CANCELLED"
    TENANT_REJECTED = "TENANT_REJECTED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False, index=True)
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    num_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus, native_enum=False, length=30),
        default=BookingStatus.WAITING_PAYMENT,
        index=True,
    )
    payment_deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payment_proof: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gateway_status: Mapped[str | None] = mapped_column(String(50), nullable=True)  # last reported transaction_status
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cancellation_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmation_email_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    checkin_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    room: Mapped["Room"] = relationship(back_populates="bookings")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} number={self.booking_number!r} room_id={self.room_id} "
            f"{self.check_in_date}..{self.check_out_date} status={self.status.value}>"
        )

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days

    def is_payment_overdue(self, now: datetime) -> bool:
        return self.status == BookingStatus.WAITING_PAYMENT and self.payment_deadline < now
