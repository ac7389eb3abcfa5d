"""Smoke tests for FastAPI app routes."""

from contextlib import ExitStack
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from staybook.database import Base

# Import all models so Base.metadata knows about them
import staybook.models.booking  # noqa: F401
import staybook.models.message  # noqa: F401
import staybook.models.review  # noqa: F401

from staybook.models.listing import InventoryUnit, Listing
from staybook.models.user import User

SESSION_USERS = [
    "staybook.app",
    "staybook.modules.availability.resolver",
    "staybook.modules.bookings.manager",
    "staybook.modules.listings.catalog",
    "staybook.modules.notifications.notifier",
    "staybook.modules.reports.listing_report",
    "staybook.modules.reviews.manager",
]

ADMIN, STAFF, GUEST, OTHER = 1, 2, 3, 4


@pytest.fixture
def app_client(tmp_path):
    """Create a test client with a temp SQLite DB and seeded users."""
    db_path = tmp_path / "test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(test_engine)
    TestSession = sessionmaker(bind=test_engine, expire_on_commit=False)

    session = TestSession()
    session.add_all([
        User(id=ADMIN, name="Ada Admin", email="admin@staybook.test", role="admin"),
        User(id=STAFF, name="Sam Staff", email="staff@staybook.test", role="staff"),
        User(id=GUEST, name="Grace Guest", email="grace@example.com", role="guest"),
        User(id=OTHER, name="Olu Other", email="olu@example.com", role="guest", status="disabled"),
    ])
    listing = Listing(
        name="Test Hotel", type="hotel", location="Lagos", price=100.0, price_unit="night",
        currency="USD", max_guests=2,
    )
    listing.units.extend(InventoryUnit(name=f"Room {n}") for n in range(1, 4))
    session.add(listing)
    session.commit()
    session.close()

    # Lifespan is not run without the context manager, so no seeding or handlers
    with ExitStack() as stack:
        for module in SESSION_USERS:
            stack.enter_context(patch(f"{module}.get_session", side_effect=lambda: TestSession()))
        from staybook.app import app
        yield TestClient(app)

    test_engine.dispose()


def _as(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


def _book(client: TestClient, user_id: int = GUEST, **overrides) -> dict:
    body = {"listing_id": 1, "start_date": "2026-03-01", "end_date": "2026-03-03", "guests": 2}
    body.update(overrides)
    response = client.post("/bookings", json=body, headers=_as(user_id))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(app_client):
    assert app_client.get("/health").json() == {"status": "ok"}


def test_list_listings(app_client):
    response = app_client.get("/listings")
    assert response.status_code == 200
    data = response.json()
    assert data[0]["name"] == "Test Hotel"
    assert data[0]["inventory_count"] == 3


def test_create_listing_requires_permission(app_client):
    body = {"name": "Bistro", "type": "restaurant", "location": "Lagos", "price": 25, "price_unit": "person"}
    assert app_client.post("/listings", json=body, headers=_as(STAFF)).status_code == 403

    response = app_client.post("/listings", json={**body, "inventory_count": 4}, headers=_as(ADMIN))
    assert response.status_code == 201
    assert response.json()["currency"] == "NGN"
    assert len(response.json()["units"]) == 4


def test_set_inventory(app_client):
    response = app_client.put("/listings/1/inventory", json={"inventory_count": 5}, headers=_as(ADMIN))
    assert response.status_code == 200
    assert response.json()["inventory_count"] == 5


def test_actor_header_required(app_client):
    assert app_client.post("/bookings", json={"listing_id": 1, "start_date": "2026-03-01", "guests": 1}).status_code == 401
    assert app_client.get("/bookings/1", headers=_as(999)).status_code == 401
    assert app_client.get("/bookings/1", headers=_as(OTHER)).status_code == 401


def test_availability_and_quote(app_client):
    _book(app_client)

    availability = app_client.get("/listings/1/availability", params={"start": "2026-03-02", "end": "2026-03-05"})
    assert availability.status_code == 200
    assert availability.json()["available_count"] == 2

    quote = app_client.get(
        "/listings/1/quote", params={"start": "2026-03-01", "end": "2026-03-03", "guests": 4, "units": 2}
    )
    assert quote.status_code == 200
    assert quote.json()["base_cost"] == 400
    assert quote.json()["deposit_required"] == 200
    assert quote.json()["is_available"] is True


def test_reversed_dates_rejected(app_client):
    response = app_client.get("/listings/1/availability", params={"start": "2026-03-05", "end": "2026-03-01"})
    assert response.status_code == 400

    response = app_client.post(
        "/bookings",
        json={"listing_id": 1, "start_date": "2026-03-05", "end_date": "2026-03-01", "guests": 1},
        headers=_as(GUEST),
    )
    assert response.status_code == 422


def test_unknown_listing_is_404(app_client):
    assert app_client.get("/listings/99/availability", params={"start": "2026-03-01"}).status_code == 404


def test_booking_flow(app_client):
    booking = _book(app_client)
    booking_id = booking["id"]
    assert booking["status"] == "Pending"
    assert booking["ledger"]["total_bill"] == 200

    blocked = app_client.post(f"/bookings/{booking_id}/confirm", headers=_as(STAFF))
    assert blocked.status_code == 409
    assert blocked.json()["threshold"] == 100

    paid = app_client.post(
        f"/bookings/{booking_id}/payments", json={"amount": 100, "method": "Cash"}, headers=_as(STAFF)
    )
    assert paid.status_code == 201
    assert paid.json()["can_confirm"] is True

    confirmed = app_client.post(f"/bookings/{booking_id}/confirm", headers=_as(STAFF))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "Confirmed"

    bill = app_client.post(
        f"/bookings/{booking_id}/bills", json={"description": "Minibar", "amount": 20}, headers=_as(STAFF)
    )
    assert bill.json()["ledger"]["balance"] == 120

    discount = app_client.post(f"/bookings/{booking_id}/discount", json={"percent": 50}, headers=_as(STAFF))
    assert discount.status_code == 400

    app_client.post(f"/bookings/{booking_id}/payments", json={"amount": 120, "method": "Debit"}, headers=_as(STAFF))
    completed = app_client.post(f"/bookings/{booking_id}/complete", headers=_as(STAFF))
    assert completed.json()["status"] == "Completed"

    again = app_client.post(f"/bookings/{booking_id}/cancel", headers=_as(STAFF))
    assert again.status_code == 409


def test_guest_permissions(app_client):
    booking_id = _book(app_client)["id"]

    assert app_client.get(f"/bookings/{booking_id}", headers=_as(GUEST)).status_code == 200
    assert app_client.post(f"/bookings/{booking_id}/confirm", headers=_as(GUEST)).status_code == 403
    assert app_client.post(
        f"/bookings/{booking_id}/payments", json={"amount": 100, "method": "Cash"}, headers=_as(GUEST)
    ).status_code == 403

    cancelled = app_client.post(f"/bookings/{booking_id}/cancel", json={"reason": "Plans changed"}, headers=_as(GUEST))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "Cancelled"


def test_update_booking(app_client):
    booking_id = _book(app_client)["id"]

    response = app_client.patch(
        f"/bookings/{booking_id}", json={"end_date": "2026-03-05", "guests": 1}, headers=_as(GUEST)
    )
    assert response.status_code == 200
    assert response.json()["end_date"] == "2026-03-05"
    assert response.json()["ledger"]["base_cost"] == 400


def test_overbooking_rejected(app_client):
    _book(app_client, units=2, guests=4)
    response = app_client.post(
        "/bookings",
        json={"listing_id": 1, "start_date": "2026-03-02", "end_date": "2026-03-02", "guests": 2, "units": 2},
        headers=_as(GUEST),
    )
    assert response.status_code == 400
    assert "Only 1 unit" in response.json()["detail"]


def test_report_and_csv(app_client):
    _book(app_client)

    assert app_client.get(
        "/listings/1/report", params={"start": "2026-03-01", "end": "2026-03-31"}, headers=_as(GUEST)
    ).status_code == 403

    report = app_client.get(
        "/listings/1/report", params={"start": "2026-03-01", "end": "2026-03-31"}, headers=_as(STAFF)
    )
    assert report.status_code == 200
    assert report.json()["active"]["count"] == 1
    assert report.json()["by_guest"] == {"Grace Guest": [1]}

    csv_response = app_client.get(
        "/listings/1/report.csv", params={"start": "2026-03-01", "end": "2026-03-31"}, headers=_as(STAFF)
    )
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert "Grace Guest" in csv_response.text


def test_reviews(app_client):
    review = app_client.post("/listings/1/reviews", json={"rating": 4, "comment": "Nice"}, headers=_as(GUEST))
    assert review.status_code == 201
    review_id = review.json()["id"]

    assert app_client.post(f"/reviews/{review_id}/approve", headers=_as(STAFF)).status_code == 403
    approved = app_client.post(f"/reviews/{review_id}/approve", headers=_as(ADMIN))
    assert approved.json()["status"] == "approved"
    assert app_client.get("/listings").json()[0]["rating"] == 4.0

    assert app_client.delete(f"/reviews/{review_id}", headers=_as(ADMIN)).status_code == 204
    assert app_client.get("/listings").json()[0]["rating"] == 0.0


def test_staff_books_new_guest_and_walk_in(app_client):
    booked = _book(app_client, STAFF, guest_name="Nadia New", guest_email="nadia@example.com")
    assert booked["user_name"] == "Nadia New"
    assert booked["user_id"] not in (ADMIN, STAFF, GUEST, OTHER)

    walk_in = _book(app_client, STAFF, start_date="2026-04-01", end_date="2026-04-01", booking_name="Walk-in")
    assert walk_in["user_id"] is None

    refused = app_client.post(
        "/bookings",
        json={"listing_id": 1, "start_date": "2026-04-02", "guests": 1, "guest_name": "Nadia", "guest_email": "n@x.io"},
        headers=_as(GUEST),
    )
    assert refused.status_code == 403


def test_restarts_keep_one_set_of_notifier_handlers():
    from staybook.app import app, notifier
    from staybook.events import EventType, event_bus

    handlers = event_bus._subscribers[EventType.BOOKING_CREATED]
    before = len(handlers)

    with patch("staybook.app.init_db"), patch("staybook.app.ListingManager") as listings:
        listings.return_value.seed_from_config.return_value = 0
        for _ in range(2):
            with TestClient(app):
                assert len(handlers) == before + 1
                assert notifier._on_booking_created in handlers

    assert len(handlers) == before
