"""Peak season rate management."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from roomstay.database import get_session
from roomstay.errors import NotFoundError, ValidationError
from roomstay.models.property import Room
from roomstay.models.rate import PeakSeasonRate, PriceType

logger = logging.getLogger(__name__)

_UNSET = object()


def validate_rate(
    start_date: date, end_date: date, price_type: PriceType, price_value: Decimal, reason: str | None
) -> None:
    try:
        PriceType(price_type)
    except ValueError:
        raise ValidationError("Price type must be FIXED or PERCENTAGE") from None
    if end_date < start_date:
        raise ValidationError("End date must be on or after start date")
    if Decimal(price_value) < 0:
        raise ValidationError("Price value cannot be negative")
    if reason and len(reason) > 200:
        raise ValidationError("Reason must be at most 200 characters")


class RateManager:
    """CRUD for a room's peak season rates. Overlapping rates are allowed and stack."""

    def list_rates(self, room_id: int) -> list[PeakSeasonRate]:
        session = get_session()
        try:
            if not session.get(Room, room_id):
                raise NotFoundError("Room not found")
            return (
                session.query(PeakSeasonRate)
                .filter(PeakSeasonRate.room_id == room_id)
                .order_by(PeakSeasonRate.start_date, PeakSeasonRate.id)
                .all()
            )
        finally:
            session.close()

    def create_rate(
        self,
        room_id: int,
        start_date: date,
        end_date: date,
        price_type: PriceType,
        price_value: Decimal,
        reason: str | None = None,
    ) -> PeakSeasonRate:
        validate_rate(start_date, end_date, price_type, price_value, reason)
        session = get_session()
        try:
            if not session.get(Room, room_id):
                raise NotFoundError("Room not found")
            rate = PeakSeasonRate(
                room_id=room_id,
                start_date=start_date,
                end_date=end_date,
                price_type=PriceType(price_type),
                price_value=Decimal(price_value),
                reason=reason,
            )
            session.add(rate)
            session.commit()
            session.refresh(rate)
            logger.info("Added peak season rate %s for room %s", rate.id, room_id)
            return rate
        finally:
            session.close()

    def update_rate(
        self,
        rate_id: int,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        price_type: PriceType | None = None,
        price_value: Decimal | None = None,
        reason: str | None | object = _UNSET,
    ) -> PeakSeasonRate:
        """Partial update. Passing ``reason=None`` clears the reason.

        Existing bookings keep the total computed at creation.
        """
        session = get_session()
        try:
            rate = session.get(PeakSeasonRate, rate_id)
            if not rate:
                raise NotFoundError("Peak season rate not found")
            new_start = start_date or rate.start_date
            new_end = end_date or rate.end_date
            new_type = PriceType(price_type) if price_type else rate.price_type
            new_value = Decimal(price_value) if price_value is not None else rate.price_value
            new_reason = rate.reason if reason is _UNSET else (reason or None)
            validate_rate(new_start, new_end, new_type, new_value, new_reason)

            rate.start_date = new_start
            rate.end_date = new_end
            rate.price_type = new_type
            rate.price_value = new_value
            rate.reason = new_reason
            session.commit()
            session.refresh(rate)
            return rate
        finally:
            session.close()

    def delete_rate(self, rate_id: int) -> None:
        session = get_session()
        try:
            rate = session.get(PeakSeasonRate, rate_id)
            if not rate:
                raise NotFoundError("Peak season rate not found")
            session.delete(rate)
            session.commit()
            logger.info("Deleted peak season rate %s", rate_id)
        finally:
            session.close()
