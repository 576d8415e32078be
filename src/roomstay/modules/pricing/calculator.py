"""Nightly price calculation with peak season rate adjustments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from roomstay.clock import iter_nights
from roomstay.database import get_session
from roomstay.errors import NotFoundError, ValidationError
from roomstay.models.property import Room
from roomstay.models.rate import PeakSeasonRate, PriceType
from roomstay.modules.availability.checker import check_window

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


@dataclass
class NightlyPrice:
    date: date
    price: Decimal
    applied_rate_ids: list[int] = field(default_factory=list)

    @property
    def is_peak_season(self) -> bool:
        return bool(self.applied_rate_ids)


@dataclass
class StayQuote:
    base_price: Decimal
    check_in: date
    check_out: date
    nights: list[NightlyPrice]
    room_id: int | None = None

    @property
    def num_nights(self) -> int:
        return len(self.nights)

    @property
    def subtotal(self) -> Decimal:
        """Price of the stay at base rate only."""
        return self.base_price * self.num_nights

    @property
    def total(self) -> Decimal:
        return sum((n.price for n in self.nights), Decimal("0"))

    @property
    def peak_season_adjustment(self) -> Decimal:
        return self.total - self.subtotal

    def as_dict(self) -> dict:
        return {
            "roomId": self.room_id,
            "basePrice": self.base_price,
            "nights": self.num_nights,
            "subtotal": self.subtotal,
            "peakSeasonAdjustment": self.peak_season_adjustment,
            "total": self.total,
            "breakdown": [
                {
                    "date": n.date.isoformat(),
                    "price": n.price,
                    "isPeakSeason": n.is_peak_season,
                    "appliedRateIds": n.applied_rate_ids,
                }
                for n in self.nights
            ],
        }


def apply_rate(day_price: Decimal, rate: PeakSeasonRate) -> Decimal:
    """FIXED replaces the day price; PERCENTAGE marks up the current day price."""
    value = Decimal(rate.price_value)
    if rate.price_type == PriceType.FIXED:
        return value
    if rate.price_type == PriceType.PERCENTAGE:
        return day_price + day_price * value / HUNDRED
    raise ValueError(f"Unknown price type: {rate.price_type!r}")


def price_for_day(
    base_price: Decimal, day: date, rates: Iterable[PeakSeasonRate]
) -> NightlyPrice:
    """Apply every covering rate, in the order given."""
    price = Decimal(base_price)
    applied: list[int] = []
    for rate in rates:
        if not rate.covers(day):
            continue
        price = apply_rate(price, rate)
        applied.append(rate.id)
    return NightlyPrice(
        date=day,
        price=price.quantize(CENT, rounding=ROUND_HALF_UP),
        applied_rate_ids=applied,
    )


def calculate_stay_price(
    base_price: Decimal,
    check_in: date,
    check_out: date,
    rates: Iterable[PeakSeasonRate],
    room_id: int | None = None,
) -> StayQuote:
    """Price every night in [check_in, check_out) and sum them."""
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")
    rates = list(rates)
    base = Decimal(base_price)
    nights = [price_for_day(base, day, rates) for day in iter_nights(check_in, check_out)]
    return StayQuote(
        base_price=base,
        check_in=check_in,
        check_out=check_out,
        nights=nights,
        room_id=room_id,
    )


class PricingEngine:
    """Loads a room's peak season rates and prices stays against them."""

    def load_rates(
        self, session: Session, room_id: int, start: date, end: date
    ) -> list[PeakSeasonRate]:
        """Rates of the room touching [start, end], in deterministic stacking order."""
        return (
            session.query(PeakSeasonRate)
            .filter(
                PeakSeasonRate.room_id == room_id,
                PeakSeasonRate.start_date <= end,
                PeakSeasonRate.end_date >= start,
            )
            .order_by(PeakSeasonRate.start_date, PeakSeasonRate.id)
            .all()
        )

    def quote_for_room(
        self, session: Session, room: Room, check_in: date, check_out: date
    ) -> StayQuote:
        rates = self.load_rates(session, room.id, check_in, check_out - timedelta(days=1))
        return calculate_stay_price(room.base_price, check_in, check_out, rates, room_id=room.id)

    def quote(self, room_id: int, check_in: date, check_out: date) -> StayQuote:
        """Price a stay for a room by id."""
        session = get_session()
        try:
            room = session.get(Room, room_id)
            if not room:
                raise NotFoundError("Room not found")
            return self.quote_for_room(session, room, check_in, check_out)
        finally:
            session.close()

    def price_calendar(self, room_id: int, start: date, end: date) -> list[NightlyPrice]:
        """Per-day prices for every day in the inclusive window [start, end]."""
        check_window(start, end)
        session = get_session()
        try:
            room = session.get(Room, room_id)
            if not room:
                raise NotFoundError("Room not found")
            rates = self.load_rates(session, room_id, start, end)
            base = Decimal(room.base_price)
            return [
                price_for_day(base, day, rates)
                for day in iter_nights(start, end + timedelta(days=1))
            ]
        finally:
            session.close()
