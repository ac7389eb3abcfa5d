"""Booking, bill, payment and booking action models."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staybook.database import Base

PAYMENT_METHODS = ("Cash", "Transfer", "Debit", "Credit")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    booking_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, default=1)
    inventory_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default="Pending")  # Pending, Confirmed, Completed, Cancelled
    discount: Mapped[float] = mapped_column(Float, default=0.0)  # percent of base cost
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    listing: Mapped["Listing"] = relationship(back_populates="bookings")  # noqa: F821
    user: Mapped["User | None"] = relationship(back_populates="bookings")  # noqa: F821
    bills: Mapped[list["Bill"]] = relationship(
        back_populates="booking", cascade="all, delete-orphan", order_by="Bill.id"
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="booking", cascade="all, delete-orphan", order_by="Payment.id"
    )
    actions: Mapped[list["BookingAction"]] = relationship(
        back_populates="booking", cascade="all, delete-orphan", order_by="BookingAction.id"
    )
    messages: Mapped[list["MessageLog"]] = relationship(back_populates="booking")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} listing_id={self.listing_id} status={self.status!r} "
            f"{self.start_date}..{self.end_date}>"
        )

    @property
    def unit_count(self) -> int:
        return len(self.inventory_ids or [])


class Bill(Base):
    __tablename__ = "booking_bills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    booking: Mapped["Booking"] = relationship(back_populates="bills")

    def __repr__(self) -> str:
        return f"<Bill id={self.id} booking_id={self.booking_id} {self.amount:.2f}>"


class Payment(Base):
    __tablename__ = "booking_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)  # Cash, Transfer, Debit, Credit
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    booking: Mapped["Booking"] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment id={self.id} booking_id={self.booking_id} {self.amount:.2f} {self.method}>"


class BookingAction(Base):
    __tablename__ = "booking_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    actor_name: Mapped[str] = mapped_column(String(200), default="System")
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    booking: Mapped["Booking"] = relationship(back_populates="actions")

    def __repr__(self) -> str:
        return f"<BookingAction booking_id={self.booking_id} action={self.action!r} by={self.actor_name!r}>"
