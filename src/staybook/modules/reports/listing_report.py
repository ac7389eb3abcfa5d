"""Per-listing booking reports and CSV export."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import selectinload

from staybook.database import get_session
from staybook.errors import NotFoundError
from staybook.models.booking import Booking
from staybook.models.listing import InventoryUnit, Listing
from staybook.modules.ledger.reconciler import reconcile
from staybook.modules.pricing.calculator import PriceCalculator, stay_duration

logger = logging.getLogger(__name__)

STATUS_ORDER = ["Confirmed", "Pending", "Completed", "Cancelled"]


@dataclass
class BookingRow:
    booking_id: int
    guest_name: str
    status: str
    start_date: date
    end_date: date
    stay_duration: int
    unit_names: list[str]
    total_bill: float
    total_paid: float
    balance: float


@dataclass
class StatusTotals:
    count: int = 0
    total_paid: float = 0.0
    total_owed: float = 0.0
    balance: float = 0.0

    def add(self, row: BookingRow) -> None:
        self.count += 1
        self.total_paid = round(self.total_paid + row.total_paid, 2)
        self.total_owed = round(self.total_owed + row.total_bill, 2)
        self.balance = round(self.balance + row.balance, 2)


@dataclass
class ListingReport:
    listing_id: int
    listing_name: str
    currency: str
    start_date: date
    end_date: date
    rows: list[BookingRow] = field(default_factory=list)
    active: StatusTotals = field(default_factory=StatusTotals)
    cancelled: StatusTotals = field(default_factory=StatusTotals)
    by_status: dict[str, list[BookingRow]] = field(default_factory=dict)
    by_guest: dict[str, list[BookingRow]] = field(default_factory=dict)
    by_unit: dict[str, list[BookingRow]] = field(default_factory=dict)


class ReportBuilder:
    """Summarises the money side of a listing's bookings over a period."""

    def __init__(self, calculator: PriceCalculator | None = None) -> None:
        self.calculator = calculator or PriceCalculator()

    def build_listing_report(self, listing_id: int, start: date, end: date) -> ListingReport:
        session = get_session()
        try:
            listing = session.get(Listing, listing_id)
            if not listing:
                raise NotFoundError("Listing", listing_id)

            bookings = (
                session.query(Booking)
                .options(
                    selectinload(Booking.bills),
                    selectinload(Booking.payments),
                    selectinload(Booking.user),
                )
                .filter(
                    Booking.listing_id == listing_id,
                    Booking.start_date <= end,
                    Booking.end_date >= start,
                )
                .order_by(Booking.start_date)
                .all()
            )
            unit_names = {
                unit.id: unit.name
                for unit in session.query(InventoryUnit).filter(InventoryUnit.listing_id == listing_id)
            }

            report = ListingReport(
                listing_id=listing.id,
                listing_name=listing.name,
                currency=listing.currency,
                start_date=start,
                end_date=end,
            )
            for booking in bookings:
                row = self._row(booking, listing, unit_names)
                report.rows.append(row)
                target = report.cancelled if row.status == "Cancelled" else report.active
                target.add(row)

                report.by_status.setdefault(row.status, []).append(row)
                report.by_guest.setdefault(row.guest_name, []).append(row)
                for name in row.unit_names or ["Unassigned"]:
                    report.by_unit.setdefault(name, []).append(row)

            report.by_status = dict(
                sorted(
                    report.by_status.items(),
                    key=lambda item: STATUS_ORDER.index(item[0]) if item[0] in STATUS_ORDER else len(STATUS_ORDER),
                )
            )
            logger.info("Built report for listing %s: %d bookings", listing_id, len(report.rows))
            return report
        finally:
            session.close()

    def export_bookings_csv(self, listing_id: int, start: date, end: date) -> str:
        """Export the report rows to a CSV string."""
        report = self.build_listing_report(listing_id, start, end)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "Booking", "Guest", "Status", "Start", "End", "Days", "Units",
            f"Total Bill ({report.currency})", f"Paid ({report.currency})", f"Balance ({report.currency})",
        ])
        for row in report.rows:
            writer.writerow([
                row.booking_id,
                row.guest_name,
                row.status,
                row.start_date.isoformat(),
                row.end_date.isoformat(),
                row.stay_duration,
                "; ".join(row.unit_names) or "Unassigned",
                f"{row.total_bill:.2f}",
                f"{row.total_paid:.2f}",
                f"{row.balance:.2f}",
            ])
        return output.getvalue()

    def _row(self, booking: Booking, listing: Listing, unit_names: dict[int, str]) -> BookingRow:
        ledger = reconcile(
            self.calculator.base_cost_for(booking, listing),
            booking.discount or 0,
            [b.amount for b in booking.bills],
            [p.amount for p in booking.payments],
        )
        return BookingRow(
            booking_id=booking.id,
            guest_name=booking.user.name if booking.user else (booking.booking_name or "Unknown Guest"),
            status=booking.status,
            start_date=booking.start_date,
            end_date=booking.end_date,
            stay_duration=stay_duration(booking.start_date, booking.end_date).duration_days,
            unit_names=[unit_names.get(i, f"#{i}") for i in booking.inventory_ids or []],
            total_bill=ledger.total_bill,
            total_paid=ledger.total_credited,
            balance=ledger.balance,
        )
