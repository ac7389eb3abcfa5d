"""Inventory availability: which units of a listing are free for a date range."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Hashable, Iterable

from sqlalchemy.orm import Session

from staybook.database import get_session
from staybook.errors import NotFoundError
from staybook.models.booking import Booking
from staybook.models.listing import Listing

logger = logging.getLogger(__name__)

# Bookings in these statuses hold their units
ACTIVE_STATUSES = ("Pending", "Confirmed")


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range."""

    start: date
    end: date

    def overlaps(self, other: DateRange) -> bool:
        return ranges_overlap(self, other)


@dataclass(frozen=True)
class BookedRange:
    """The slice of an existing booking the resolver needs."""

    booking_id: Hashable
    start_date: date
    end_date: date
    inventory_ids: frozenset = frozenset()
    status: str = "Confirmed"

    @property
    def range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)


@dataclass
class AvailabilityResult:
    available_unit_ids: set = field(default_factory=set)
    booked_unit_ids: set = field(default_factory=set)

    @property
    def available_count(self) -> int:
        return len(self.available_unit_ids)


def ranges_overlap(a: DateRange, b: DateRange) -> bool:
    """True when two inclusive ranges share at least one day."""
    return a.start <= b.end and b.start <= a.end


def resolve_availability(
    requested: DateRange,
    existing: Iterable[BookedRange],
    total_inventory: Iterable[Hashable],
    exclude_booking_id: Hashable | None = None,
) -> AvailabilityResult:
    """Subtract the units of every overlapping booking from the inventory.

    ``existing`` must already be limited to Pending/Confirmed bookings.
    """
    booked: set = set()
    for booking in existing:
        if exclude_booking_id is not None and booking.booking_id == exclude_booking_id:
            continue
        if ranges_overlap(requested, booking.range):
            booked.update(booking.inventory_ids)

    return AvailabilityResult(
        available_unit_ids=set(total_inventory) - booked,
        booked_unit_ids=booked,
    )


class AvailabilityChecker:
    """Loads a listing's inventory and active bookings and resolves availability."""

    def get_availability(
        self,
        listing_id: int,
        start: date,
        end: date,
        exclude_booking_id: int | None = None,
        session: Session | None = None,
    ) -> AvailabilityResult:
        owns_session = session is None
        session = session or get_session()
        try:
            listing = session.get(Listing, listing_id)
            if not listing:
                raise NotFoundError("Listing", listing_id)

            result = resolve_availability(
                DateRange(start, end),
                self.load_booked_ranges(session, listing_id, start, end),
                [unit.id for unit in listing.units],
                exclude_booking_id=exclude_booking_id,
            )
            logger.debug(
                "Listing %s %s..%s: %d of %d units free",
                listing_id, start, end, result.available_count, listing.inventory_count,
            )
            return result
        finally:
            if owns_session:
                session.close()

    def load_booked_ranges(
        self, session: Session, listing_id: int, start: date, end: date
    ) -> list[BookedRange]:
        """Active bookings of a listing that touch the window."""
        bookings = (
            session.query(Booking)
            .filter(
                Booking.listing_id == listing_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_date <= end,
                Booking.end_date >= start,
            )
            .all()
        )
        return [
            BookedRange(
                booking_id=b.id,
                start_date=b.start_date,
                end_date=b.end_date,
                inventory_ids=frozenset(b.inventory_ids or []),
                status=b.status,
            )
            for b in bookings
        ]
