"""Listing CRUD and inventory unit management."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import selectinload

from staybook.config import booking_setting, settings
from staybook.database import get_session
from staybook.errors import BookingValidationError, NotFoundError
from staybook.models.booking import Booking
from staybook.models.listing import CURRENCIES, LISTING_TYPES, InventoryUnit, Listing
from staybook.models.user import User
from staybook.modules.availability.resolver import ACTIVE_STATUSES
from staybook.modules.permissions.authorizer import Authorizer
from staybook.modules.pricing.calculator import PriceUnit

logger = logging.getLogger(__name__)


class ListingManager:
    """Creates listings and keeps their inventory units in line with the configured count."""

    def __init__(self, authorizer: Authorizer | None = None) -> None:
        self.authorizer = authorizer or Authorizer()

    def list_listings(self, listing_type: str | None = None) -> list[Listing]:
        session = get_session()
        try:
            query = (
                session.query(Listing)
                .options(selectinload(Listing.units))
                .order_by(Listing.location, Listing.type, Listing.name)
            )
            if listing_type:
                query = query.filter(Listing.type == listing_type)
            return query.all()
        finally:
            session.close()

    def create_listing(
        self,
        actor: User | None,
        name: str,
        type: str,
        location: str,
        price: float,
        price_unit: str = "night",
        currency: str | None = None,
        max_guests: int = 1,
        inventory_count: int = 0,
        description: str | None = None,
    ) -> Listing:
        """Create a listing with ``inventory_count`` units.

        ``actor`` is None only for seeding from configuration.
        """
        if actor is not None:
            self.authorizer.require(actor, "listing:create")
        currency = (currency or booking_setting("default_currency")).upper()
        self._validate(name, type, price, price_unit, currency, max_guests, inventory_count)

        session = get_session()
        try:
            listing = Listing(
                name=name,
                type=type,
                location=location,
                description=description,
                price=price,
                price_unit=price_unit,
                currency=currency,
                max_guests=max_guests,
            )
            for n in range(1, inventory_count + 1):
                listing.units.append(InventoryUnit(name=f"Unit {n}"))
            session.add(listing)
            session.commit()
            logger.info("Created listing %s (%s) with %d units", listing.name, listing.type, inventory_count)
            return listing
        finally:
            session.close()

    def set_inventory_count(self, actor: User, listing_id: int, count: int) -> Listing:
        """Grow or shrink a listing's units.

        Units are removed newest first and only while they are not held by
        a Pending or Confirmed booking.
        """
        self.authorizer.require(actor, "listing:update")
        if count < 0:
            raise BookingValidationError("Inventory count cannot be negative.")

        session = get_session()
        try:
            listing = session.get(Listing, listing_id)
            if not listing:
                raise NotFoundError("Listing", listing_id)

            units = list(listing.units)
            if count > len(units):
                used = {u.name for u in units}
                n = len(units)
                while len(listing.units) < count:
                    n += 1
                    if f"Unit {n}" in used:
                        continue
                    listing.units.append(InventoryUnit(name=f"Unit {n}"))
            elif count < len(units):
                held: set[int] = set()
                for booking in session.query(Booking).filter(
                    Booking.listing_id == listing_id, Booking.status.in_(ACTIVE_STATUSES)
                ):
                    held.update(booking.inventory_ids or [])
                removable = [u for u in reversed(units) if u.id not in held]
                to_remove = len(units) - count
                if len(removable) < to_remove:
                    raise BookingValidationError(
                        f"Only {len(removable)} unit(s) can be removed; the rest are held by active bookings."
                    )
                for unit in removable[:to_remove]:
                    listing.units.remove(unit)

            session.commit()
            logger.info("Listing %s inventory set to %d", listing_id, count)
            return listing
        finally:
            session.close()

    def seed_from_config(self) -> int:
        """Create listings from config.yaml that are not in the database yet."""
        created = 0
        for cfg in settings.get("listings", []):
            session = get_session()
            try:
                exists = session.query(Listing).filter(Listing.name == cfg["name"]).first()
            finally:
                session.close()
            if exists:
                continue
            self.create_listing(
                None,
                name=cfg["name"],
                type=cfg.get("type", "hotel"),
                location=cfg.get("location", ""),
                price=cfg.get("price", 0),
                price_unit=cfg.get("price_unit", "night"),
                currency=cfg.get("currency"),
                max_guests=cfg.get("max_guests", 1),
                inventory_count=cfg.get("inventory_count", 0),
                description=cfg.get("description"),
            )
            logger.info("Seeded listing: %s", cfg["name"])
            created += 1
        return created

    def _validate(
        self,
        name: str,
        type: str,
        price: float,
        price_unit: str,
        currency: str,
        max_guests: int,
        inventory_count: int,
    ) -> None:
        if not name:
            raise BookingValidationError("Listing name is required.")
        if type not in LISTING_TYPES:
            raise BookingValidationError(f"Invalid listing type: {type}. Must be one of {LISTING_TYPES}")
        if price_unit not in {u.value for u in PriceUnit}:
            raise BookingValidationError(f"Invalid price unit: {price_unit}.")
        if currency not in CURRENCIES:
            raise BookingValidationError(f"Invalid currency: {currency}. Must be one of {CURRENCIES}")
        if price <= 0:
            raise BookingValidationError("Price must be greater than zero.")
        if max_guests < 1:
            raise BookingValidationError("Max guests must be at least 1.")
        if inventory_count < 0:
            raise BookingValidationError("Inventory count cannot be negative.")


def listing_to_dict(listing: Listing) -> dict[str, Any]:
    return {
        "id": listing.id,
        "name": listing.name,
        "type": listing.type,
        "location": listing.location,
        "description": listing.description,
        "price": listing.price,
        "price_unit": listing.price_unit,
        "currency": listing.currency,
        "max_guests": listing.max_guests,
        "rating": listing.rating,
        "inventory_count": listing.inventory_count,
        "units": [{"id": u.id, "name": u.name} for u in listing.units],
    }
