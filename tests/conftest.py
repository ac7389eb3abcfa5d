"""Shared test fixtures."""

from __future__ import annotations

import os
from contextlib import ExitStack
from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests

from staybook.database import Base
from staybook.events import EventBus
from staybook.models.booking import Booking
from staybook.models.listing import InventoryUnit, Listing
from staybook.models.user import User
from staybook.modules.permissions.authorizer import Authorizer

# Import all models to register them
import staybook.models.message  # noqa: F401
import staybook.models.review  # noqa: F401

# Every module that opens its own session via get_session()
SESSION_MODULES = [
    "staybook.modules.availability.resolver",
    "staybook.modules.bookings.manager",
    "staybook.modules.listings.catalog",
    "staybook.modules.notifications.notifier",
    "staybook.modules.reports.listing_report",
    "staybook.modules.reviews.manager",
]

ROLE_PERMISSIONS = {
    "guest": [
        "user:update:own",
        "booking:read:own",
        "booking:create:own",
        "booking:update:own",
        "booking:cancel:own",
        "review:create:own",
    ],
    "staff": [
        "dashboard:read",
        "user:read",
        "listing:read",
        "booking:read",
        "booking:create",
        "booking:update",
        "booking:confirm",
        "booking:complete",
        "booking:cancel",
    ],
    "admin": ["*"],
}


def _noop_close(self):
    pass


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def use_db(db_session: Session):
    """Point every service module at the test session."""
    with ExitStack() as stack:
        for module in SESSION_MODULES:
            stack.enter_context(patch(f"{module}.get_session", return_value=db_session))
        stack.enter_context(patch.object(type(db_session), "close", _noop_close))
        yield db_session


@pytest.fixture
def authorizer() -> Authorizer:
    return Authorizer(ROLE_PERMISSIONS)


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test."""
    return EventBus()


def _user(db_session: Session, name: str, email: str, role: str) -> User:
    user = User(name=name, email=email, role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def admin(db_session: Session) -> User:
    return _user(db_session, "Ada Admin", "admin@staybook.test", "admin")


@pytest.fixture
def staff(db_session: Session) -> User:
    return _user(db_session, "Sam Staff", "staff@staybook.test", "staff")


@pytest.fixture
def guest(db_session: Session) -> User:
    return _user(db_session, "Grace Guest", "grace@example.com", "guest")


@pytest.fixture
def other_guest(db_session: Session) -> User:
    return _user(db_session, "Olu Other", "olu@example.com", "guest")


@pytest.fixture
def sample_listing(db_session: Session) -> Listing:
    """A hotel priced per night with three rooms."""
    listing = Listing(
        name="Test Hotel",
        type="hotel",
        location="Lagos",
        price=100.0,
        price_unit="night",
        currency="USD",
        max_guests=2,
    )
    for n in range(1, 4):
        listing.units.append(InventoryUnit(name=f"Room {n}"))
    db_session.add(listing)
    db_session.commit()
    return listing


@pytest.fixture
def sample_booking(db_session: Session, sample_listing: Listing, guest: User) -> Booking:
    """A Pending two-night booking of the first room."""
    booking = Booking(
        listing_id=sample_listing.id,
        user_id=guest.id,
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 3),
        guests=2,
        inventory_ids=[sample_listing.units[0].id],
        status="Pending",
        discount=0.0,
    )
    db_session.add(booking)
    db_session.commit()
    return booking
