"""Peak season rate model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomstay.clock import utcnow
from roomstay.database import Base


class PriceType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class PeakSeasonRate(Base):
    __tablename__ = "peak_season_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)  # inclusive
    price_type: Mapped[PriceType] = mapped_column(SAEnum(PriceType, native_enum=False, length=20))
    price_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    room: Mapped["Room"] = relationship(back_populates="peak_season_rates")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<PeakSeasonRate id={self.id} room_id={self.room_id} "
            f"{self.start_date}..{self.end_date} {self.price_type.value} {self.price_value}>"
        )

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
