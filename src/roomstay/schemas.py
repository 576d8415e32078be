"""Request bodies for the JSON API. Field names are camelCase on the wire."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from roomstay.models.rate import PriceType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AvailabilityRequest(CamelModel):
    room_id: int
    check_in: date
    check_out: date


class BookingCreate(CamelModel):
    room_id: int
    check_in: date
    check_out: date
    guests: int = Field(ge=1)
    guest_name: str | None = Field(default=None, max_length=200)
    guest_email: str | None = Field(default=None, max_length=200)


class PaymentProofSubmit(CamelModel):
    payment_proof: str = Field(min_length=1, max_length=500)


class ReasonBody(CamelModel):
    reason: str = ""


class RateCreate(CamelModel):
    room_id: int
    start_date: date
    end_date: date
    price_type: PriceType
    price_value: Decimal = Field(ge=0)
    reason: str | None = Field(default=None, max_length=200)


class RateUpdate(CamelModel):
    start_date: date | None = None
    end_date: date | None = None
    price_type: PriceType | None = None
    price_value: Decimal | None = Field(default=None, ge=0)
    reason: str | None = Field(default=None, max_length=200)
