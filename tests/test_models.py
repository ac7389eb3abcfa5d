"""Tests for database models."""

from datetime import date

from sqlalchemy.orm import Session

from staybook.models.booking import Bill, Booking, BookingAction, Payment
from staybook.models.listing import InventoryUnit, Listing
from staybook.models.user import User


def test_create_listing(db_session: Session):
    listing = Listing(name="Beach House", type="hotel", location="Lekki", price=200.0)
    db_session.add(listing)
    db_session.commit()

    loaded = db_session.query(Listing).first()
    assert loaded.name == "Beach House"
    assert loaded.price_unit == "night"
    assert loaded.rating == 0.0
    assert loaded.inventory_count == 0


def test_listing_units_cascade(db_session: Session, sample_listing: Listing):
    assert sample_listing.inventory_count == 3
    db_session.delete(sample_listing)
    db_session.commit()
    assert db_session.query(InventoryUnit).count() == 0


def test_booking_defaults(db_session: Session, sample_listing: Listing):
    booking = Booking(
        listing_id=sample_listing.id,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 1, 2),
        inventory_ids=[1, 2],
    )
    db_session.add(booking)
    db_session.commit()

    assert booking.status == "Pending"
    assert booking.discount == 0.0
    assert booking.guests == 1
    assert booking.unit_count == 2


def test_booking_relationships(db_session: Session, sample_booking: Booking, guest: User):
    booking = db_session.query(Booking).first()
    assert booking.listing.name == "Test Hotel"
    assert booking.user.email == guest.email
    assert booking in guest.bookings


def test_bills_payments_actions(db_session: Session, sample_booking: Booking):
    sample_booking.bills.append(Bill(description="Laundry", amount=15.0))
    sample_booking.payments.append(Payment(amount=50.0, method="Cash"))
    sample_booking.actions.append(BookingAction(action="Payment Added", message="Recorded Cash payment."))
    db_session.commit()

    db_session.refresh(sample_booking)
    assert [b.amount for b in sample_booking.bills] == [15.0]
    assert sample_booking.payments[0].method == "Cash"
    assert sample_booking.actions[0].actor_name == "System"
