"""FastAPI application exposing listings, availability, bookings and billing."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from staybook.database import get_session, init_db
from staybook.errors import (
    BookingValidationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    TransitionBlockedError,
)
from staybook.models.user import User
from staybook.modules.bookings.manager import BookingManager
from staybook.modules.listings.catalog import ListingManager, listing_to_dict
from staybook.modules.notifications.notifier import BookingNotifier
from staybook.modules.permissions.authorizer import Authorizer
from staybook.modules.reports.listing_report import ReportBuilder
from staybook.modules.reviews.manager import ReviewManager
from staybook.schemas import (
    BillCreate,
    BookingCreate,
    BookingUpdate,
    CancelRequest,
    DiscountSet,
    InventoryUpdate,
    ListingCreate,
    PaymentCreate,
    ReviewCreate,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

notifier = BookingNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logger.info("Starting StayBook...")
    init_db()
    seeded = ListingManager().seed_from_config()
    if seeded:
        logger.info("Seeded %d listings from config", seeded)
    notifier.setup_event_handlers()

    yield

    notifier.remove_event_handlers()
    logger.info("StayBook shut down.")


app = FastAPI(title="StayBook", lifespan=lifespan)


# --- Error mapping ---


@app.exception_handler(BookingValidationError)
async def validation_error_handler(request: Request, exc: BookingValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
async def permission_error_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(TransitionBlockedError)
async def blocked_transition_handler(request: Request, exc: TransitionBlockedError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "threshold": exc.threshold})


# --- Actor ---


def current_actor(x_user_id: int | None = Header(default=None)) -> User:
    """Resolve the acting user from the X-User-Id header set by the auth proxy."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    session = get_session()
    try:
        user = session.get(User, x_user_id)
    finally:
        session.close()
    if user is None or user.status == "disabled":
        raise HTTPException(status_code=401, detail="Unknown or disabled user")
    return user


# --- Listings ---


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/listings")
def list_listings(type: str | None = None):
    return [listing_to_dict(listing) for listing in ListingManager().list_listings(type)]


@app.post("/listings", status_code=201)
def create_listing(data: ListingCreate, actor: User = Depends(current_actor)):
    listing = ListingManager().create_listing(actor, **data.model_dump())
    return listing_to_dict(listing)


@app.put("/listings/{listing_id}/inventory")
def set_inventory(listing_id: int, data: InventoryUpdate, actor: User = Depends(current_actor)):
    listing = ListingManager().set_inventory_count(actor, listing_id, data.inventory_count)
    return listing_to_dict(listing)


@app.get("/listings/{listing_id}/availability")
def availability(
    listing_id: int,
    start: date,
    end: date | None = None,
    exclude_booking_id: int | None = None,
):
    end = end or start
    if end < start:
        raise BookingValidationError("End date cannot be before start date.")
    result = BookingManager().checker.get_availability(
        listing_id, start, end, exclude_booking_id=exclude_booking_id
    )
    return {
        "listing_id": listing_id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "available_unit_ids": sorted(result.available_unit_ids),
        "available_count": result.available_count,
    }


@app.get("/listings/{listing_id}/quote")
def quote(
    listing_id: int,
    start: date,
    end: date | None = None,
    guests: int = Query(default=1, ge=1),
    units: int = Query(default=1, ge=1),
    exclude_booking_id: int | None = None,
):
    q = BookingManager().quote(
        listing_id, start, end or start, guests, units, exclude_booking_id=exclude_booking_id
    )
    return {
        "listing_id": q.listing_id,
        "start_date": q.start_date.isoformat(),
        "end_date": q.end_date.isoformat(),
        "available_count": q.available_count,
        "available_unit_ids": q.available_unit_ids,
        "is_available": q.is_available,
        "duration_days": q.price.duration_days,
        "nights": q.price.nights,
        "base_cost": q.price.base_cost,
        "deposit_required": q.price.deposit_required,
        "currency": q.price.currency,
    }


@app.get("/listings/{listing_id}/report")
def listing_report(listing_id: int, start: date, end: date, actor: User = Depends(current_actor)):
    Authorizer().require(actor, "booking:read")
    report = ReportBuilder().build_listing_report(listing_id, start, end)

    def totals(t):
        return {"count": t.count, "total_paid": t.total_paid, "total_owed": t.total_owed, "balance": t.balance}

    def ids(groups):
        return {key: [row.booking_id for row in rows] for key, rows in groups.items()}

    return {
        "listing_id": report.listing_id,
        "listing_name": report.listing_name,
        "currency": report.currency,
        "active": totals(report.active),
        "cancelled": totals(report.cancelled),
        "by_status": ids(report.by_status),
        "by_guest": ids(report.by_guest),
        "by_unit": ids(report.by_unit),
    }


@app.get("/listings/{listing_id}/report.csv")
def export_listing_report(listing_id: int, start: date, end: date, actor: User = Depends(current_actor)):
    Authorizer().require(actor, "booking:read")
    csv_data = ReportBuilder().export_bookings_csv(listing_id, start, end)
    return StreamingResponse(
        iter([csv_data]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=bookings_{listing_id}_{start}_{end}.csv"},
    )


# --- Bookings ---


@app.post("/bookings", status_code=201)
def create_booking(data: BookingCreate, actor: User = Depends(current_actor)):
    manager = BookingManager()
    booking = manager.create_booking(
        actor,
        data.listing_id,
        data.start_date,
        data.end_date,
        data.guests,
        data.units,
        user_id=data.user_id,
        inventory_ids=data.inventory_ids,
        status=data.status,
        booking_name=data.booking_name,
        guest_name=data.guest_name,
        guest_email=data.guest_email,
    )
    return manager.describe(booking.id)


@app.get("/bookings/{booking_id}")
def get_booking(booking_id: int, actor: User = Depends(current_actor)):
    return BookingManager().describe(booking_id, actor=actor)


@app.patch("/bookings/{booking_id}")
def update_booking(booking_id: int, data: BookingUpdate, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.update_booking(
        actor,
        booking_id,
        start=data.start_date,
        end=data.end_date,
        guests=data.guests,
        unit_count=data.units,
        inventory_ids=data.inventory_ids,
        booking_name=data.booking_name,
    )
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/confirm")
def confirm_booking(booking_id: int, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.confirm(actor, booking_id)
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/complete")
def complete_booking(booking_id: int, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.complete(actor, booking_id)
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: int, data: CancelRequest | None = None, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.cancel(actor, booking_id, reason=data.reason if data else None)
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/bills", status_code=201)
def add_bill(booking_id: int, data: BillCreate, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.add_bill(actor, booking_id, data.description, data.amount)
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/payments", status_code=201)
def add_payment(booking_id: int, data: PaymentCreate, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.add_payment(actor, booking_id, data.amount, data.method, notes=data.notes)
    return manager.describe(booking_id)


@app.post("/bookings/{booking_id}/discount")
def set_discount(booking_id: int, data: DiscountSet, actor: User = Depends(current_actor)):
    manager = BookingManager()
    manager.set_discount(actor, booking_id, data.percent)
    return manager.describe(booking_id)


# --- Reviews ---


@app.post("/listings/{listing_id}/reviews", status_code=201)
def submit_review(listing_id: int, data: ReviewCreate, actor: User = Depends(current_actor)):
    review = ReviewManager().submit_review(actor, listing_id, data.rating, data.comment)
    return {"id": review.id, "listing_id": review.listing_id, "rating": review.rating, "status": review.status}


@app.post("/reviews/{review_id}/approve")
def approve_review(review_id: int, actor: User = Depends(current_actor)):
    review = ReviewManager().approve_review(actor, review_id)
    return {"id": review.id, "listing_id": review.listing_id, "rating": review.rating, "status": review.status}


@app.delete("/reviews/{review_id}", status_code=204)
def delete_review(review_id: int, actor: User = Depends(current_actor)):
    ReviewManager().delete_review(actor, review_id)


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "staybook.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
