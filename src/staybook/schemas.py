"""Request bodies for the HTTP API."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ListingCreate(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["hotel", "events", "restaurant"]
    location: str
    price: float = Field(gt=0)
    price_unit: Literal["night", "hour", "person"] = "night"
    currency: str | None = None
    max_guests: int = Field(default=1, ge=1)
    inventory_count: int = Field(default=0, ge=0)
    description: str | None = None


class InventoryUpdate(BaseModel):
    inventory_count: int = Field(ge=0)


class BookingCreate(BaseModel):
    listing_id: int
    start_date: date
    end_date: date | None = None
    guests: int = Field(ge=1)
    units: int = Field(default=1, ge=1)
    user_id: int | None = None
    inventory_ids: list[int] | None = None
    status: Literal["Pending", "Confirmed"] | None = None
    booking_name: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None

    @model_validator(mode="after")
    def single_day_default(self) -> BookingCreate:
        # A missing end date means a same-day booking
        if self.end_date is None:
            self.end_date = self.start_date
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class BookingUpdate(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    guests: int | None = Field(default=None, ge=1)
    units: int | None = Field(default=None, ge=1)
    inventory_ids: list[int] | None = None
    booking_name: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class BillCreate(BaseModel):
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)


class PaymentCreate(BaseModel):
    amount: float = Field(gt=0)
    method: Literal["Cash", "Transfer", "Debit", "Credit"]
    notes: str | None = None


class DiscountSet(BaseModel):
    percent: float = Field(ge=0)


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = ""
