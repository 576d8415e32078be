"""Property and room models."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomstay.database import Base


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tenant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tenant_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    rooms: Mapped[list["Room"]] = relationship(back_populates="prop", order_by="Room.id")

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r}>"


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=2)

    prop: Mapped[Property] = relationship(back_populates="rooms")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="room")  # noqa: F821
    peak_season_rates: Mapped[list["PeakSeasonRate"]] = relationship(  # noqa: F821
        back_populates="room", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Room id={self.id} name={self.name!r} base_price={self.base_price}>"
