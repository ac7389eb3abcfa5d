"""Base booking cost and deposit calculation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from staybook.config import booking_setting
from staybook.models.listing import Listing

logger = logging.getLogger(__name__)


class PriceUnit(str, Enum):
    NIGHT = "night"
    HOUR = "hour"
    PERSON = "person"


@dataclass(frozen=True)
class StayDuration:
    duration_days: int
    nights: int


@dataclass
class PriceQuote:
    listing_id: int
    price: float
    price_unit: str
    currency: str
    duration_days: int
    nights: int
    guests: int
    unit_count: int
    base_cost: float
    deposit_required: float


def _parse_unit(price_unit: str | PriceUnit) -> PriceUnit | None:
    try:
        return PriceUnit(price_unit)
    except ValueError:
        logger.warning("Unknown price unit %r, pricing at 0", price_unit)
        return None


def stay_duration(start: date, end: date) -> StayDuration:
    """Calendar days spanned (inclusive) and billable nights.

    A one-night stay spans two dates, so nights are days minus one, with a
    floor of one for same-day bookings.
    """
    duration_days = (end - start).days + 1
    nights = duration_days - 1 if duration_days > 1 else 1
    return StayDuration(duration_days=duration_days, nights=nights)


def calculate_base_cost(
    price: float,
    price_unit: str | PriceUnit,
    start: date,
    end: date,
    guests: int,
    unit_count: int,
    hours_per_day: int | None = None,
) -> float:
    """Rate multiplied by the quantity the price unit bills on, times units."""
    if hours_per_day is None:
        hours_per_day = booking_setting("event_booking_daily_hours")

    duration = stay_duration(start, end)
    unit = _parse_unit(price_unit)
    if unit is PriceUnit.NIGHT:
        return price * duration.nights * unit_count
    if unit is PriceUnit.HOUR:
        return price * duration.duration_days * hours_per_day * unit_count
    if unit is PriceUnit.PERSON:
        return price * guests * unit_count
    return 0


def calculate_deposit(price: float, price_unit: str | PriceUnit, unit_count: int) -> float:
    """One night, one hour or one person at the base rate, for every unit."""
    if _parse_unit(price_unit) is None:
        return 0
    return price * 1 * unit_count


class PriceCalculator:
    """Quotes bookings against a listing's pricing rule."""

    def __init__(self, hours_per_day: int | None = None) -> None:
        self.hours_per_day = hours_per_day or booking_setting("event_booking_daily_hours")

    def quote(
        self, listing: Listing, start: date, end: date, guests: int, unit_count: int
    ) -> PriceQuote:
        duration = stay_duration(start, end)
        base_cost = calculate_base_cost(
            listing.price,
            listing.price_unit,
            start,
            end,
            guests,
            unit_count,
            hours_per_day=self.hours_per_day,
        )
        return PriceQuote(
            listing_id=listing.id,
            price=listing.price,
            price_unit=listing.price_unit,
            currency=listing.currency,
            duration_days=duration.duration_days,
            nights=duration.nights,
            guests=guests,
            unit_count=unit_count,
            base_cost=round(base_cost, 2),
            deposit_required=round(calculate_deposit(listing.price, listing.price_unit, unit_count), 2),
        )

    def base_cost_for(self, booking, listing: Listing) -> float:
        """Base cost of an existing booking, using its assigned unit count."""
        return calculate_base_cost(
            listing.price,
            listing.price_unit,
            booking.start_date,
            booking.end_date,
            booking.guests,
            booking.unit_count,
            hours_per_day=self.hours_per_day,
        )
