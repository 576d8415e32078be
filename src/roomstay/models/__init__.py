"""Database models."""

from roomstay.models.booking import ACTIVE_STATUSES, Booking, BookingStatus, CancellationReason
from roomstay.models.payment import PaymentNotification
from roomstay.models.property import Property, Room
from roomstay.models.rate import PeakSeasonRate, PriceType

__all__ = [
    "ACTIVE_STATUSES",
    "Booking",
    "BookingStatus",
    "CancellationReason",
    "PaymentNotification",
    "PeakSeasonRate",
    "PriceType",
    "Property",
    "Room",
]
