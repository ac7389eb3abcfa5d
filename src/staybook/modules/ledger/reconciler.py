"""Reconcile a booking's base cost, discount, bills and payments into a balance."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from staybook.config import booking_setting
from staybook.errors import BookingValidationError


@dataclass(frozen=True)
class LedgerSummary:
    base_cost: float
    discount_percent: float
    discount_amount: float
    added_bills_total: float
    total_bill: float
    total_payments: float
    total_credited: float
    balance: float

    @property
    def is_settled(self) -> bool:
        return self.balance <= 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def reconcile(
    base_cost: float,
    discount_percent: float,
    bills: Iterable[float],
    payments: Iterable[float],
) -> LedgerSummary:
    """Build the ledger for a booking.

    The discount is credited against the bill rather than taken off it, so
    ``total_bill`` always shows the undiscounted charges.
    """
    discount_percent = discount_percent or 0
    discount_amount = base_cost * discount_percent / 100 if discount_percent > 0 else 0.0
    added_bills_total = sum(bills, 0.0)
    total_payments = sum(payments, 0.0)
    total_bill = base_cost + added_bills_total
    total_credited = total_payments + discount_amount

    return LedgerSummary(
        base_cost=round(base_cost, 2),
        discount_percent=discount_percent,
        discount_amount=round(discount_amount, 2),
        added_bills_total=round(added_bills_total, 2),
        total_bill=round(total_bill, 2),
        total_payments=round(total_payments, 2),
        total_credited=round(total_credited, 2),
        balance=round(total_bill - total_credited, 2),
    )


def max_discount_amount(base_cost: float, max_percent: float | None = None) -> float:
    if max_percent is None:
        max_percent = booking_setting("max_discount_percent")
    return base_cost * max_percent / 100


def validate_discount(
    base_cost: float, discount_percent: float, max_percent: float | None = None
) -> float:
    """Reject a discount outside 0..max percent; return the discount amount."""
    if max_percent is None:
        max_percent = booking_setting("max_discount_percent")
    if discount_percent < 0:
        raise BookingValidationError("Discount cannot be negative.")
    amount = base_cost * discount_percent / 100
    cap = max_discount_amount(base_cost, max_percent)
    if discount_percent > max_percent or amount > cap:
        raise BookingValidationError(
            f"Discount cannot exceed {cap:.2f} ({max_percent}% of base cost)."
        )
    return amount
