"""FastAPI application: booking, availability, pricing and payment routes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from roomstay.clock import today
from roomstay.config import get_env, settings
from roomstay.database import get_session, init_db
from roomstay.errors import RoomStayError, ValidationError
from roomstay.models.booking import Booking, BookingStatus
from roomstay.models.property import Property, Room
from roomstay.models.rate import PeakSeasonRate, PriceType
from roomstay.modules.availability import AvailabilityChecker
from roomstay.modules.bookings import BookingManager
from roomstay.modules.payments import PaymentService
from roomstay.modules.pricing import PricingEngine, RateManager
from roomstay.scheduler import create_scheduler
from roomstay.schemas import (
    AvailabilityRequest,
    BookingCreate,
    PaymentProofSubmit,
    RateCreate,
    RateUpdate,
    ReasonBody,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logger.info("Starting RoomStay...")
    init_db()
    seed_properties_from_config()

    scheduler = create_scheduler()
    scheduler.start()
    logger.info("Scheduler started.")

    yield

    scheduler.shutdown()
    logger.info("RoomStay shut down.")


app = FastAPI(title="RoomStay", lifespan=lifespan)


def payment_service() -> PaymentService:
    return PaymentService()


def seed_properties_from_config() -> None:
    """Seed properties, rooms and their peak season rates from config.yaml if missing."""
    session = get_session()
    try:
        for prop_cfg in settings.get("properties", []):
            prop = session.query(Property).filter(Property.name == prop_cfg["name"]).first()
            if not prop:
                prop = Property(
                    name=prop_cfg["name"],
                    address=prop_cfg.get("address", ""),
                    city=prop_cfg.get("city"),
                    tenant_name=prop_cfg.get("tenant_name"),
                    tenant_email=prop_cfg.get("tenant_email"),
                    description=prop_cfg.get("description"),
                )
                session.add(prop)
                session.flush()
                logger.info("Seeded property: %s", prop.name)

            existing_rooms = {room.name for room in prop.rooms}
            for room_cfg in prop_cfg.get("rooms", []):
                if room_cfg["name"] in existing_rooms:
                    continue
                room = Room(
                    prop=prop,
                    name=room_cfg["name"],
                    base_price=Decimal(str(room_cfg.get("base_price", 0))),
                    capacity=room_cfg.get("capacity", 2),
                )
                for rate_cfg in room_cfg.get("peak_season_rates", []):
                    room.peak_season_rates.append(PeakSeasonRate(
                        start_date=date.fromisoformat(str(rate_cfg["start_date"])),
                        end_date=date.fromisoformat(str(rate_cfg["end_date"])),
                        price_type=PriceType(rate_cfg["price_type"]),
                        price_value=Decimal(str(rate_cfg["price_value"])),
                        reason=rate_cfg.get("reason"),
                    ))
                session.add(room)
                logger.info("Seeded room: %s / %s", prop.name, room.name)
        session.commit()
    finally:
        session.close()


# --- Serialization ---


def booking_to_dict(booking: Booking) -> dict[str, Any]:
    room = booking.room
    return {
        "id": booking.id,
        "bookingNumber": booking.booking_number,
        "roomId": booking.room_id,
        "roomName": room.name if room else None,
        "propertyId": room.property_id if room else None,
        "propertyName": room.prop.name if room else None,
        "guestName": booking.guest_name,
        "guestEmail": booking.guest_email,
        "checkInDate": booking.check_in_date,
        "checkOutDate": booking.check_out_date,
        "nights": booking.nights,
        "numberOfGuests": booking.num_guests,
        "totalPrice": booking.total_price,
        "status": booking.status.value,
        "paymentDeadline": booking.payment_deadline,
        "paymentProof": booking.payment_proof,
        "paymentUploadedAt": booking.payment_uploaded_at,
        "gatewayStatus": booking.gateway_status,
        "cancelledAt": booking.cancelled_at,
        "cancellationReason": booking.cancellation_reason,
        "cancellationNote": booking.cancellation_note,
        "createdAt": booking.created_at,
    }


def rate_to_dict(rate: PeakSeasonRate) -> dict[str, Any]:
    return {
        "id": rate.id,
        "roomId": rate.room_id,
        "startDate": rate.start_date,
        "endDate": rate.end_date,
        "priceType": rate.price_type.value,
        "priceValue": rate.price_value,
        "reason": rate.reason,
    }


def page_payload(items: list[Booking], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "success": True,
        "data": [booking_to_dict(b) for b in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit if limit else 0,
        },
    }


# --- Error handling ---


@app.exception_handler(RoomStayError)
async def roomstay_error_handler(request: Request, exc: RoomStayError):
    return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse({"success": False, "error": message}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"success": False, "error": "An unexpected error occurred"}, status_code=500
    )


# --- Catalogue & pricing ---


@app.get("/api/health")
async def health():
    return {"success": True, "status": "ok"}


@app.get("/api/properties")
async def list_properties():
    session = get_session()
    try:
        properties = session.query(Property).order_by(Property.id).all()
        return {
            "success": True,
            "data": [
                {
                    "id": p.id,
                    "name": p.name,
                    "address": p.address,
                    "city": p.city,
                    "rooms": [
                        {
                            "id": r.id,
                            "name": r.name,
                            "basePrice": r.base_price,
                            "capacity": r.capacity,
                        }
                        for r in p.rooms
                    ],
                }
                for p in properties
            ],
        }
    finally:
        session.close()


def _availability_payload(room_id: int, check_in: date, check_out: date) -> dict[str, Any]:
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")
    if check_in < today():
        raise ValidationError("Check-in date cannot be in the past")
    quote = PricingEngine().quote(room_id, check_in, check_out)
    available = AvailabilityChecker().is_available(room_id, check_in, check_out)
    payload: dict[str, Any] = {
        "success": True,
        "available": available,
        "priceBreakdown": quote.as_dict(),
    }
    if not available:
        payload["message"] = "Room is not available for the selected dates"
    return payload


@app.get("/api/rooms/{room_id}/availability")
async def room_availability(
    room_id: int,
    check_in: date = Query(alias="checkIn"),
    check_out: date = Query(alias="checkOut"),
):
    """Availability and price breakdown for a stay."""
    return _availability_payload(room_id, check_in, check_out)


@app.post("/api/bookings/check-availability")
async def check_availability(body: AvailabilityRequest):
    return _availability_payload(body.room_id, body.check_in, body.check_out)


@app.get("/api/rooms/{room_id}/prices")
async def room_prices(
    room_id: int,
    start_date: date = Query(alias="startDate"),
    end_date: date = Query(alias="endDate"),
):
    """Per-day price calendar with availability."""
    days = PricingEngine().price_calendar(room_id, start_date, end_date)
    booked = AvailabilityChecker().booked_days(room_id, start_date, end_date)
    session = get_session()
    try:
        room = session.get(Room, room_id)
        base_price = room.base_price if room else None
    finally:
        session.close()
    return {
        "success": True,
        "basePrice": base_price,
        "prices": [
            {
                "date": d.date,
                "price": d.price,
                "isPeakSeason": d.is_peak_season,
                "available": d.date not in booked,
            }
            for d in days
        ],
    }


# --- Bookings (guest side) ---


@app.post("/api/bookings")
async def create_booking(body: BookingCreate):
    booking = BookingManager().create_booking(
        body.room_id,
        body.check_in,
        body.check_out,
        body.guests,
        guest_name=body.guest_name,
        guest_email=body.guest_email,
    )
    return {
        "success": True,
        "message": "Booking created. Please complete payment within the payment window.",
        "data": booking_to_dict(booking),
    }


@app.get("/api/bookings")
async def list_bookings(
    status: BookingStatus | None = None,
    guest_email: str | None = Query(default=None, alias="guestEmail"),
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    items, total = BookingManager().list_bookings(
        status=status, guest_email=guest_email, search=search, page=page, limit=limit
    )
    return page_payload(items, total, page, limit)


@app.get("/api/bookings/{booking_id}")
async def get_booking(booking_id: int):
    booking = BookingManager().get_booking(booking_id)
    return {"success": True, "data": booking_to_dict(booking)}


@app.put("/api/bookings/{booking_id}/cancel")
async def cancel_booking(booking_id: int):
    booking = BookingManager().cancel_by_user(booking_id)
    return {"success": True, "message": "Booking cancelled", "data": booking_to_dict(booking)}


@app.put("/api/bookings/{booking_id}/payment")
async def submit_payment_proof(booking_id: int, body: PaymentProofSubmit):
    booking = BookingManager().submit_payment_proof(booking_id, body.payment_proof)
    return {
        "success": True,
        "message": "Payment proof received. Waiting for confirmation from the property owner.",
        "data": booking_to_dict(booking),
    }


# --- Payments ---


@app.post("/api/bookings/{booking_id}/create-payment")
async def create_payment(booking_id: int):
    data = payment_service().create_payment(booking_id)
    return {"success": True, "message": "Payment created", "data": data}


@app.get("/api/bookings/{booking_id}/payment-status")
async def payment_status(booking_id: int):
    result = payment_service().sync_status(booking_id)
    return {"success": True, "data": result.as_dict()}


@app.post("/api/payment/webhook")
async def payment_webhook(request: Request):
    """Gateway notification callback."""
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body") from None
    if not isinstance(payload, dict):
        raise ValidationError("Invalid notification payload")
    result = payment_service().handle_notification(payload)
    return {"success": True, "message": "Notification processed", "data": result.as_dict()}


# --- Tenant orders ---


@app.get("/api/tenant/availability")
async def tenant_availability(
    property_id: int = Query(alias="propertyId"),
    start_date: date = Query(alias="startDate"),
    end_date: date = Query(alias="endDate"),
    room_id: int | None = Query(default=None, alias="roomId"),
):
    """Occupancy calendar of a property's rooms."""
    prop, days = AvailabilityChecker().occupancy(
        property_id, start_date, end_date, room_id=room_id
    )
    return {
        "success": True,
        "property": {"id": prop.id, "name": prop.name},
        "data": [d.as_dict() for d in days],
    }


@app.get("/api/tenant/orders")
async def tenant_orders(
    status: BookingStatus | None = None,
    property_id: int | None = Query(default=None, alias="propertyId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    items, total = BookingManager().list_tenant_orders(
        status=status, property_id=property_id, page=page, limit=limit
    )
    return page_payload(items, total, page, limit)


@app.put("/api/tenant/orders/{booking_id}/confirm")
async def tenant_confirm(booking_id: int):
    booking = BookingManager().tenant_confirm(booking_id)
    return {"success": True, "message": "Booking confirmed", "data": booking_to_dict(booking)}


@app.put("/api/tenant/orders/{booking_id}/reject")
async def tenant_reject(booking_id: int, body: ReasonBody):
    booking = BookingManager().tenant_reject(booking_id, body.reason)
    return {"success": True, "message": "Booking rejected", "data": booking_to_dict(booking)}


@app.put("/api/tenant/orders/{booking_id}/cancel")
async def tenant_cancel(booking_id: int, body: ReasonBody):
    booking = BookingManager().tenant_cancel(booking_id, body.reason)
    return {
        "success": True,
        "message": f"Booking cancelled by tenant. Reason: {body.reason.strip()}",
        "data": booking_to_dict(booking),
    }


# --- Peak season rates ---


@app.get("/api/peak-season-rates")
async def list_rates(room_id: int = Query(alias="roomId")):
    rates = RateManager().list_rates(room_id)
    return {"success": True, "data": [rate_to_dict(r) for r in rates]}


@app.post("/api/peak-season-rates")
async def create_rate(body: RateCreate):
    rate = RateManager().create_rate(
        body.room_id,
        body.start_date,
        body.end_date,
        body.price_type,
        body.price_value,
        body.reason,
    )
    return {"success": True, "message": "Peak season rate created", "data": rate_to_dict(rate)}


@app.put("/api/peak-season-rates/{rate_id}")
async def update_rate(rate_id: int, body: RateUpdate):
    rate = RateManager().update_rate(rate_id, **body.model_dump(exclude_unset=True))
    return {"success": True, "message": "Peak season rate updated", "data": rate_to_dict(rate)}


@app.delete("/api/peak-season-rates/{rate_id}")
async def delete_rate(rate_id: int):
    RateManager().delete_rate(rate_id)
    return {"success": True, "message": "Peak season rate deleted"}


# --- Maintenance ---


@app.post("/api/cron/auto-cancel")
async def run_expiry_sweep(authorization: str | None = Header(default=None)):
    """Run the overdue-payment sweep now."""
    secret = get_env("CRON_SECRET")
    if secret and authorization != f"Bearer {secret}":
        return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)
    expired = BookingManager().expire_overdue_bookings()
    return {
        "success": True,
        "message": f"Processed {len(expired)} expired bookings",
        "data": {"cancelledBookingIds": expired},
    }


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "roomstay.app:app",
        host=get_env("HOST", "127.0.0.1"),
        port=int(get_env("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
