"""Payment gateway notification log."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roomstay.clock import utcnow
from roomstay.database import Base


class PaymentNotification(Base):
    __tablename__ = "payment_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    fraud_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    gross_amount: Mapped[str | None] = mapped_column(String(50), nullable=True)
    signature_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    outcome: Mapped[str] = mapped_column(String(50), default="received")  # applied, ignored, rejected, not_found
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_payload: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON blob
    received_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<PaymentNotification id={self.id} order_id={self.order_id!r} "
            f"status={self.transaction_status!r} outcome={self.outcome!r}>"
        )
