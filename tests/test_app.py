"""Route tests for the FastAPI app."""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import roomstay.database as db_module
from roomstay.database import Base, build_engine

# Import all models so Base.metadata knows about them
import roomstay.models.booking  # noqa: F401
import roomstay.models.payment  # noqa: F401
import roomstay.models.property  # noqa: F401
import roomstay.models.rate  # noqa: F401

from roomstay.models.property import Property, Room
from roomstay.modules.payments import compute_signature

SERVER_KEY = "SB-Mid-server-TEST"


@pytest.fixture
def app_client(tmp_path, monkeypatch):
    """Create a test client with a temp SQLite DB and no scheduler."""
    db_url = f"sqlite:///{tmp_path / 'test.db'}"
    test_engine = build_engine(db_url)
    Base.metadata.create_all(test_engine)
    TestSession = sessionmaker(bind=test_engine, expire_on_commit=False)

    # Seed a property with one room
    session = TestSession()
    prop = Property(name="Test Villa", address="Jl. Test 1", city="Jakarta")
    prop.rooms.append(Room(name="Deluxe Room", base_price=Decimal("1000000"), capacity=2))
    session.add(prop)
    session.commit()
    session.close()

    monkeypatch.setenv("MIDTRANS_SERVER_KEY", SERVER_KEY)
    monkeypatch.delenv("CRON_SECRET", raising=False)

    # Every module calls get_session(), which reads SessionLocal at call time
    orig_session = db_module.SessionLocal
    db_module.SessionLocal = TestSession

    mock_scheduler = MagicMock()

    with (
        patch("roomstay.app.create_scheduler", return_value=mock_scheduler),
        patch("roomstay.app.seed_properties_from_config"),
        patch("roomstay.app.init_db"),
        patch("roomstay.modules.bookings.manager.event_bus"),
        patch("roomstay.modules.payments.service.event_bus"),
    ):
        from roomstay.app import app
        with TestClient(app) as client:
            yield client

    db_module.SessionLocal = orig_session
    test_engine.dispose()


def _dates(offset=30, nights=4):
    check_in = date.today() + timedelta(days=offset)
    return check_in.isoformat(), (check_in + timedelta(days=nights)).isoformat()


def _create_booking(client, offset=30, nights=4, guests=2):
    check_in, check_out = _dates(offset, nights)
    return client.post("/api/bookings", json={
        "roomId": 1,
        "checkIn": check_in,
        "checkOut": check_out,
        "guests": guests,
        "guestName": "Andi",
        "guestEmail": "andi@example.com",
    })


def test_health(app_client):
    response = app_client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_list_properties(app_client):
    data = app_client.get("/api/properties").json()["data"]
    assert data[0]["name"] == "Test Villa"
    assert data[0]["rooms"][0]["capacity"] == 2


def test_room_availability_with_price(app_client):
    check_in, check_out = _dates()
    response = app_client.get(
        "/api/rooms/1/availability", params={"checkIn": check_in, "checkOut": check_out}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is True
    assert body["priceBreakdown"]["nights"] == 4
    assert float(body["priceBreakdown"]["total"]) == 4000000


def test_availability_rejects_bad_range(app_client):
    check_in, _ = _dates()
    response = app_client.post(
        "/api/bookings/check-availability",
        json={"roomId": 1, "checkIn": check_in, "checkOut": check_in},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_availability_unknown_room(app_client):
    check_in, check_out = _dates()
    response = app_client.get(
        "/api/rooms/99/availability", params={"checkIn": check_in, "checkOut": check_out}
    )
    assert response.status_code == 404


def test_missing_query_param_is_400(app_client):
    response = app_client.get("/api/rooms/1/availability", params={"checkIn": "2030-01-01"})
    assert response.status_code == 400
    assert "checkOut" in response.json()["error"]


def test_booking_flow_with_tenant_confirmation(app_client):
    response = _create_booking(app_client)
    assert response.status_code == 200
    booking = response.json()["data"]
    assert booking["status"] == "WAITING_PAYMENT"
    assert float(booking["totalPrice"]) == 4000000

    # The same dates are now taken
    check_in, check_out = _dates()
    body = app_client.post(
        "/api/bookings/check-availability",
        json={"roomId": 1, "checkIn": check_in, "checkOut": check_out},
    ).json()
    assert body["available"] is False

    overlap = _create_booking(app_client, offset=32)
    assert overlap.status_code == 400
    assert "not available" in overlap.json()["error"]

    response = app_client.put(
        f"/api/bookings/{booking['id']}/payment", json={"paymentProof": "receipt-1.jpg"}
    )
    assert response.json()["data"]["status"] == "WAITING_CONFIRMATION"

    response = app_client.put(f"/api/tenant/orders/{booking['id']}/confirm")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CONFIRMED"

    # Confirmed bookings cannot be cancelled by the guest
    response = app_client.put(f"/api/bookings/{booking['id']}/cancel")
    assert response.status_code == 400


def test_booking_over_capacity(app_client):
    response = _create_booking(app_client, guests=3)
    assert response.status_code == 400
    assert "capacity" in response.json()["error"]


def test_tenant_reject_requires_reason(app_client):
    booking_id = _create_booking(app_client).json()["data"]["id"]
    app_client.put(f"/api/bookings/{booking_id}/payment", json={"paymentProof": "r.jpg"})

    response = app_client.put(f"/api/tenant/orders/{booking_id}/reject", json={"reason": ""})
    assert response.status_code == 400

    response = app_client.put(
        f"/api/tenant/orders/{booking_id}/reject", json={"reason": "Amount mismatch"}
    )
    assert response.json()["data"]["status"] == "CANCELLED"
    assert response.json()["data"]["cancellationReason"] == "TENANT_REJECTED"


def test_list_bookings_and_tenant_orders(app_client):
    _create_booking(app_client, offset=30)
    _create_booking(app_client, offset=40)

    body = app_client.get("/api/bookings", params={"limit": 1}).json()
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}

    body = app_client.get("/api/tenant/orders", params={"status": "WAITING_PAYMENT"}).json()
    assert body["pagination"]["total"] == 2

    response = app_client.get("/api/bookings/999")
    assert response.status_code == 404


def test_webhook_confirms_booking(app_client):
    booking = _create_booking(app_client).json()["data"]
    gross = "4000000.00"
    payload = {
        "order_id": booking["bookingNumber"],
        "status_code": "200",
        "gross_amount": gross,
        "transaction_status": "settlement",
        "signature_key": compute_signature(booking["bookingNumber"], "200", gross, SERVER_KEY),
    }

    response = app_client.post("/api/payment/webhook", json=payload)
    assert response.status_code == 200
    assert response.json()["data"]["newStatus"] == "CONFIRMED"

    status = app_client.get(f"/api/bookings/{booking['id']}").json()["data"]["status"]
    assert status == "CONFIRMED"


def test_webhook_bad_signature_is_403(app_client):
    booking = _create_booking(app_client).json()["data"]
    payload = {
        "order_id": booking["bookingNumber"],
        "status_code": "200",
        "gross_amount": "4000000.00",
        "transaction_status": "settlement",
        "signature_key": "0" * 128,
    }
    response = app_client.post("/api/payment/webhook", json=payload)
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Invalid signature"}

    status = app_client.get(f"/api/bookings/{booking['id']}").json()["data"]["status"]
    assert status == "WAITING_PAYMENT"


def test_peak_season_rate_crud_and_prices(app_client):
    check_in = date.today() + timedelta(days=60)
    response = app_client.post("/api/peak-season-rates", json={
        "roomId": 1,
        "startDate": check_in.isoformat(),
        "endDate": (check_in + timedelta(days=1)).isoformat(),
        "priceType": "PERCENTAGE",
        "priceValue": 20,
        "reason": "Long weekend",
    })
    assert response.status_code == 200
    rate_id = response.json()["data"]["id"]

    prices = app_client.get("/api/rooms/1/prices", params={
        "startDate": check_in.isoformat(),
        "endDate": (check_in + timedelta(days=2)).isoformat(),
    }).json()["prices"]
    assert [p["isPeakSeason"] for p in prices] == [True, True, False]
    assert float(prices[0]["price"]) == 1200000

    response = app_client.put(f"/api/peak-season-rates/{rate_id}", json={"priceValue": 50})
    assert float(response.json()["data"]["priceValue"]) == 50

    rates = app_client.get("/api/peak-season-rates", params={"roomId": 1}).json()["data"]
    assert len(rates) == 1

    assert app_client.delete(f"/api/peak-season-rates/{rate_id}").status_code == 200
    assert app_client.delete(f"/api/peak-season-rates/{rate_id}").status_code == 404


def test_rate_validation_error(app_client):
    response = app_client.post("/api/peak-season-rates", json={
        "roomId": 1,
        "startDate": "2030-01-05",
        "endDate": "2030-01-01",
        "priceType": "FIXED",
        "priceValue": 100,
    })
    assert response.status_code == 400


def test_cron_auto_cancel(app_client, monkeypatch):
    response = app_client.post("/api/cron/auto-cancel")
    assert response.status_code == 200
    assert response.json()["data"]["cancelledBookingIds"] == []

    monkeypatch.setenv("CRON_SECRET", "s3cret")
    assert app_client.post("/api/cron/auto-cancel").status_code == 401
    response = app_client.post(
        "/api/cron/auto-cancel", headers={"Authorization": "Bearer s3cret"}
    )
    assert response.status_code == 200


def test_price_calendar_marks_booked_nights(app_client):
    assert _create_booking(app_client, offset=30, nights=2).status_code == 200
    start = date.today() + timedelta(days=29)

    prices = app_client.get("/api/rooms/1/prices", params={
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(days=3)).isoformat(),
    }).json()["prices"]
    assert [p["available"] for p in prices] == [True, False, False, True]


def test_rate_reason_can_be_cleared(app_client):
    response = app_client.post("/api/peak-season-rates", json={
        "roomId": 1,
        "startDate": "2030-01-01",
        "endDate": "2030-01-02",
        "priceType": "FIXED",
        "priceValue": 1500000,
        "reason": "New year",
    })
    rate_id = response.json()["data"]["id"]

    response = app_client.put(f"/api/peak-season-rates/{rate_id}", json={"priceValue": 1600000})
    assert response.json()["data"]["reason"] == "New year"

    response = app_client.put(f"/api/peak-season-rates/{rate_id}", json={"reason": None})
    assert response.status_code == 200
    assert response.json()["data"]["reason"] is None


def test_tenant_availability_calendar(app_client):
    assert _create_booking(app_client, offset=30, nights=2).status_code == 200
    start = date.today() + timedelta(days=29)

    response = app_client.get("/api/tenant/availability", params={
        "propertyId": 1,
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(days=4)).isoformat(),
    })
    assert response.status_code == 200
    body = response.json()
    assert body["property"]["name"] == "Test Villa"
    assert [d["status"] for d in body["data"]] == [
        "available", "checkin", "booked", "checkout", "available",
    ]
    assert body["data"][1]["guestName"] == "Andi"


def test_tenant_availability_errors(app_client):
    params = {"propertyId": 99, "startDate": "2030-01-01", "endDate": "2030-01-05"}
    assert app_client.get("/api/tenant/availability", params=params).status_code == 404

    params = {"propertyId": 1, "startDate": "2030-01-01", "endDate": "2031-06-01"}
    assert app_client.get("/api/tenant/availability", params=params).status_code == 400
