"""Listing and inventory unit models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staybook.database import Base

LISTING_TYPES = ("hotel", "events", "restaurant")
CURRENCIES = ("USD", "EUR", "GBP", "NGN")


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # hotel, events, restaurant
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    price_unit: Mapped[str] = mapped_column(String(20), default="night")  # night, hour, person
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    max_guests: Mapped[int] = mapped_column(Integer, default=1)  # per unit
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    units: Mapped[list["InventoryUnit"]] = relationship(
        back_populates="listing", cascade="all, delete-orphan", order_by="InventoryUnit.id"
    )
    bookings: Mapped[list["Booking"]] = relationship(back_populates="listing")  # noqa: F821
    reviews: Mapped[list["Review"]] = relationship(  # noqa: F821
        back_populates="listing", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} name={self.name!r} {self.price} {self.currency}/{self.price_unit}>"

    @property
    def inventory_count(self) -> int:
        return len(self.units)


class InventoryUnit(Base):
    __tablename__ = "listing_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    listing: Mapped["Listing"] = relationship(back_populates="units")

    def __repr__(self) -> str:
        return f"<InventoryUnit id={self.id} listing_id={self.listing_id} name={self.name!r}>"
