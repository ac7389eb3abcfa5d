"""Booking operations: quoting, creation, edits, billing and status changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from staybook.database import get_session
from staybook.errors import BookingValidationError, NotFoundError, PermissionDeniedError
from staybook.events import Event, EventBus, EventType, event_bus
from staybook.models.booking import PAYMENT_METHODS, Bill, Booking, BookingAction, Payment
from staybook.models.listing import InventoryUnit, Listing
from staybook.models.user import User
from staybook.modules.availability.resolver import AvailabilityChecker, AvailabilityResult
from staybook.modules.bookings.lifecycle import (
    TRANSITIONS,
    BookingStatus,
    check_transition,
    ensure_can_complete,
    ensure_can_confirm,
    format_money,
    is_terminal,
)
from staybook.modules.ledger.reconciler import LedgerSummary, reconcile, validate_discount
from staybook.modules.permissions.authorizer import Authorizer
from staybook.modules.pricing.calculator import PriceCalculator, PriceQuote, calculate_deposit

logger = logging.getLogger(__name__)


@dataclass
class BookingQuote:
    listing_id: int
    start_date: date
    end_date: date
    available_unit_ids: list[int]
    price: PriceQuote

    @property
    def available_count(self) -> int:
        return len(self.available_unit_ids)

    @property
    def is_available(self) -> bool:
        return self.available_count >= self.price.unit_count


@dataclass
class BookingLedger:
    summary: LedgerSummary
    deposit_required: float
    currency: str

    @property
    def can_confirm(self) -> bool:
        return self.summary.total_credited >= self.deposit_required

    @property
    def can_complete(self) -> bool:
        return self.summary.balance <= 0


@dataclass
class _Changes:
    notes: list[str] = field(default_factory=list)

    def add(self, label: str, old: Any, new: Any) -> None:
        if old != new:
            self.notes.append(f"{label}: {old} -> {new}")


class BookingManager:
    """Runs booking operations against the database.

    Every operation opens its own session. Guarded operations take the
    acting ``User`` and consult the ``Authorizer``.
    """

    def __init__(
        self,
        authorizer: Authorizer | None = None,
        calculator: PriceCalculator | None = None,
        checker: AvailabilityChecker | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.authorizer = authorizer or Authorizer()
        self.calculator = calculator or PriceCalculator()
        self.checker = checker or AvailabilityChecker()
        self.bus = bus or event_bus

    # --- Quotes ---

    def quote(
        self,
        listing_id: int,
        start: date,
        end: date,
        guests: int,
        unit_count: int = 1,
        exclude_booking_id: int | None = None,
    ) -> BookingQuote:
        """Availability and price estimate for a prospective booking."""
        session = get_session()
        try:
            listing = self._get_listing(session, listing_id)
            self._validate_request(listing, start, end, guests, unit_count)
            availability = self.checker.get_availability(
                listing_id, start, end, exclude_booking_id=exclude_booking_id, session=session
            )
            return BookingQuote(
                listing_id=listing_id,
                start_date=start,
                end_date=end,
                available_unit_ids=sorted(availability.available_unit_ids),
                price=self.calculator.quote(listing, start, end, guests, unit_count),
            )
        finally:
            session.close()

    # --- Create / update ---

    def create_booking(
        self,
        actor: User,
        listing_id: int,
        start: date,
        end: date,
        guests: int,
        unit_count: int = 1,
        *,
        user_id: int | None = None,
        inventory_ids: list[int] | None = None,
        status: str | None = None,
        booking_name: str | None = None,
        guest_name: str | None = None,
        guest_email: str | None = None,
    ) -> Booking:
        """Create a booking after checking availability.

        Guests may only book for themselves and always start Pending. Staff
        holding ``booking:create`` may book on behalf of another user, for a
        new guest given by ``guest_name`` and ``guest_email``, or for nobody
        (a walk-in with only a ``booking_name``). Staff may also open the
        booking directly as Confirmed.
        """
        new_guest = guest_name is not None or guest_email is not None
        if self.authorizer.check(actor, "booking:create"):
            if new_guest and user_id is not None:
                raise BookingValidationError("Give either an existing user or new guest details, not both.")
            owner_id = user_id
            try:
                initial = BookingStatus(status or BookingStatus.PENDING)
            except ValueError:
                raise BookingValidationError(f"Unknown booking status: {status}") from None
            if initial not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise BookingValidationError(f"A new booking cannot start as {initial.value}.")
        else:
            self.authorizer.require(actor, "booking:create:own")
            if new_guest or (user_id is not None and user_id != actor.id):
                raise PermissionDeniedError("booking:create")
            if inventory_ids is not None:
                raise PermissionDeniedError("booking:update")
            owner_id = actor.id
            initial = BookingStatus.PENDING

        session = get_session()
        try:
            listing = self._get_listing(session, listing_id)
            if owner_id is not None and session.get(User, owner_id) is None:
                raise NotFoundError("User", owner_id)
            self._validate_request(listing, start, end, guests, unit_count)

            availability = self.checker.get_availability(listing.id, start, end, session=session)
            units = self._assign_units(availability, unit_count, inventory_ids)
            if new_guest:
                owner_id = self._guest_for(session, guest_name, guest_email).id

            booking = Booking(
                listing_id=listing.id,
                user_id=owner_id,
                booking_name=booking_name,
                start_date=start,
                end_date=end,
                guests=guests,
                inventory_ids=units,
                status=initial.value,
                discount=0.0,
            )
            session.add(booking)
            session.flush()
            self._record(
                booking, actor, "Created",
                f"Booking created for {guests} guest(s), {unit_count} unit(s), {start} to {end}.",
            )
            session.commit()
            logger.info(
                "Created booking %s on listing %s (%s, units %s)",
                booking.id, listing.id, booking.status, units,
            )

            self.bus.publish(Event(
                event_type=EventType.BOOKING_CREATED,
                data={
                    "booking_id": booking.id,
                    "listing_id": listing.id,
                    "user_id": owner_id,
                    "status": booking.status,
                },
            ))
            return booking
        finally:
            session.close()

    def update_booking(
        self,
        actor: User,
        booking_id: int,
        *,
        start: date | None = None,
        end: date | None = None,
        guests: int | None = None,
        unit_count: int | None = None,
        inventory_ids: list[int] | None = None,
        booking_name: str | None = None,
    ) -> Booking:
        """Change dates, guests or units, re-checking availability without this booking."""
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            self.authorizer.require_any(actor, "booking:update", owner_id=booking.user_id)
            if inventory_ids is not None and not self.authorizer.check(actor, "booking:update"):
                raise PermissionDeniedError("booking:update")
            self._ensure_editable(booking)

            listing = booking.listing
            new_start = start or booking.start_date
            new_end = end or booking.end_date
            new_guests = guests if guests is not None else booking.guests
            new_units = unit_count if unit_count is not None else (
                len(inventory_ids) if inventory_ids is not None else booking.unit_count
            )
            self._validate_request(listing, new_start, new_end, new_guests, new_units)

            availability = self.checker.get_availability(
                listing.id, new_start, new_end, exclude_booking_id=booking.id, session=session
            )
            units = self._assign_units(
                availability, new_units, inventory_ids, current=booking.inventory_ids
            )

            changes = _Changes()
            changes.add("Dates", f"{booking.start_date}..{booking.end_date}", f"{new_start}..{new_end}")
            changes.add("Guests", booking.guests, new_guests)
            changes.add("Units", sorted(booking.inventory_ids or []), units)
            if booking_name is not None:
                changes.add("Name", booking.booking_name, booking_name)
                booking.booking_name = booking_name

            booking.start_date = new_start
            booking.end_date = new_end
            booking.guests = new_guests
            booking.inventory_ids = units
            self._record(booking, actor, "Updated", "; ".join(changes.notes) or "No changes.")
            session.commit()
            logger.info("Updated booking %s: %s", booking.id, changes.notes)

            self.bus.publish(Event(
                event_type=EventType.BOOKING_UPDATED,
                data={"booking_id": booking.id, "changes": changes.notes},
            ))
            return booking
        finally:
            session.close()

    # --- Status transitions ---

    def confirm(self, actor: User, booking_id: int) -> Booking:
        """Pending -> Confirmed, once the deposit has been credited."""
        self.authorizer.require(actor, "booking:confirm")
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            check_transition(booking.status, BookingStatus.CONFIRMED)
            ledger = self._ledger(booking)
            ensure_can_confirm(ledger.summary, ledger.deposit_required, ledger.currency)
            return self._apply_transition(
                session, booking, actor, BookingStatus.CONFIRMED,
                "Booking confirmed.", EventType.BOOKING_CONFIRMED,
            )
        finally:
            session.close()

    def complete(self, actor: User, booking_id: int) -> Booking:
        """Confirmed -> Completed, once nothing is owed."""
        self.authorizer.require(actor, "booking:complete")
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            check_transition(booking.status, BookingStatus.COMPLETED)
            ledger = self._ledger(booking)
            ensure_can_complete(ledger.summary, ledger.currency)
            return self._apply_transition(
                session, booking, actor, BookingStatus.COMPLETED,
                "Booking completed.", EventType.BOOKING_COMPLETED,
            )
        finally:
            session.close()

    def cancel(self, actor: User, booking_id: int, reason: str | None = None) -> Booking:
        """Cancel a Pending or Confirmed booking, releasing its units."""
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            self.authorizer.require_any(actor, "booking:cancel", owner_id=booking.user_id)
            check_transition(booking.status, BookingStatus.CANCELLED)
            message = f"Booking cancelled: {reason}" if reason else "Booking cancelled."
            return self._apply_transition(
                session, booking, actor, BookingStatus.CANCELLED,
                message, EventType.BOOKING_CANCELLED,
            )
        finally:
            session.close()

    def _apply_transition(
        self,
        session: Session,
        booking: Booking,
        actor: User,
        target: BookingStatus,
        message: str,
        event_type: EventType,
    ) -> Booking:
        previous = booking.status
        booking.status = target.value
        self._record(booking, actor, target.value, message)
        session.commit()
        logger.info("Booking %s: %s -> %s by %s", booking.id, previous, target.value, actor.name)

        self.bus.publish(Event(
            event_type=event_type,
            data={
                "booking_id": booking.id,
                "listing_id": booking.listing_id,
                "user_id": booking.user_id,
                "previous_status": previous,
                "status": booking.status,
            },
        ))
        return booking

    # --- Billing ---

    def add_bill(self, actor: User, booking_id: int, description: str, amount: float) -> Bill:
        if not description or not description.strip():
            raise BookingValidationError("Description is required.")
        if amount <= 0:
            raise BookingValidationError("Amount must be a positive number.")

        self.authorizer.require(actor, "booking:update")
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            self._ensure_editable(booking)

            bill = Bill(
                description=description.strip(),
                amount=amount,
                actor_id=actor.id,
                actor_name=actor.name,
            )
            booking.bills.append(bill)
            currency = booking.listing.currency
            self._record(
                booking, actor, "Bill Added",
                f"Added bill '{bill.description}' for {format_money(amount, currency)}.",
            )
            session.commit()
            logger.info("Bill of %.2f added to booking %s", amount, booking.id)

            self.bus.publish(Event(
                event_type=EventType.BILL_ADDED,
                data={"booking_id": booking.id, "bill_id": bill.id, "amount": amount},
            ))
            return bill
        finally:
            session.close()

    def add_payment(
        self,
        actor: User,
        booking_id: int,
        amount: float,
        method: str,
        notes: str | None = None,
    ) -> Payment:
        """Record a payment received outside the system."""
        if amount <= 0:
            raise BookingValidationError("Amount must be a positive number.")
        if method not in PAYMENT_METHODS:
            raise BookingValidationError(
                f"Invalid payment method: {method}. Must be one of {PAYMENT_METHODS}"
            )

        self.authorizer.require(actor, "booking:update")
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            self._ensure_editable(booking)

            payment = Payment(
                amount=amount,
                method=method,
                notes=notes or None,
                actor_id=actor.id,
                actor_name=actor.name,
            )
            booking.payments.append(payment)
            currency = booking.listing.currency
            self._record(
                booking, actor, "Payment Added",
                f"Recorded {method} payment of {format_money(amount, currency)}.",
            )
            session.commit()
            logger.info("Payment of %.2f (%s) recorded on booking %s", amount, method, booking.id)

            self.bus.publish(Event(
                event_type=EventType.PAYMENT_RECORDED,
                data={"booking_id": booking.id, "payment_id": payment.id, "amount": amount},
            ))
            return payment
        finally:
            session.close()

    def set_discount(self, actor: User, booking_id: int, percent: float) -> Booking:
        self.authorizer.require(actor, "booking:update")
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            self._ensure_editable(booking)

            base_cost = self.calculator.base_cost_for(booking, booking.listing)
            amount = validate_discount(base_cost, percent)
            previous = booking.discount or 0
            booking.discount = percent
            self._record(
                booking, actor, "Discount Set",
                f"Discount changed from {previous}% to {percent}% "
                f"({format_money(amount, booking.listing.currency)}).",
            )
            session.commit()
            logger.info("Discount on booking %s set to %s%%", booking.id, percent)

            self.bus.publish(Event(
                event_type=EventType.DISCOUNT_APPLIED,
                data={"booking_id": booking.id, "percent": percent, "amount": round(amount, 2)},
            ))
            return booking
        finally:
            session.close()

    # --- Reads ---

    def get_ledger(self, booking_id: int) -> BookingLedger:
        session = get_session()
        try:
            return self._ledger(self._get_booking(session, booking_id))
        finally:
            session.close()

    def describe(self, booking_id: int, actor: User | None = None) -> dict[str, Any]:
        """Plain-data view of a booking with its ledger, for display."""
        session = get_session()
        try:
            booking = self._get_booking(session, booking_id)
            if actor is not None:
                self.authorizer.require_any(actor, "booking:read", owner_id=booking.user_id)

            listing = booking.listing
            ledger = self._ledger(booking)
            unit_names = {
                unit.id: unit.name
                for unit in session.query(InventoryUnit).filter(
                    InventoryUnit.id.in_(booking.inventory_ids or [])
                )
            }
            status = BookingStatus(booking.status)
            return {
                "id": booking.id,
                "booking_name": booking.booking_name,
                "listing_id": listing.id,
                "listing_name": listing.name,
                "user_id": booking.user_id,
                "user_name": booking.user.name if booking.user else None,
                "start_date": booking.start_date.isoformat(),
                "end_date": booking.end_date.isoformat(),
                "guests": booking.guests,
                "inventory_ids": list(booking.inventory_ids or []),
                "inventory_names": [unit_names.get(i, f"#{i}") for i in booking.inventory_ids or []],
                "status": booking.status,
                "allowed_transitions": sorted(s.value for s in TRANSITIONS[status]),
                "discount": booking.discount or 0,
                "currency": listing.currency,
                "ledger": ledger.summary.as_dict(),
                "deposit_required": ledger.deposit_required,
                "can_confirm": status is BookingStatus.PENDING and ledger.can_confirm,
                "can_complete": status is BookingStatus.CONFIRMED and ledger.can_complete,
                "bills": [
                    {
                        "id": b.id,
                        "description": b.description,
                        "amount": b.amount,
                        "actor": b.actor_name,
                        "created_at": b.created_at.isoformat() if b.created_at else None,
                    }
                    for b in booking.bills
                ],
                "payments": [
                    {
                        "id": p.id,
                        "amount": p.amount,
                        "method": p.method,
                        "notes": p.notes,
                        "actor": p.actor_name,
                        "timestamp": p.timestamp.isoformat() if p.timestamp else None,
                    }
                    for p in booking.payments
                ],
                "actions": [
                    {
                        "actor": a.actor_name,
                        "action": a.action,
                        "message": a.message,
                        "timestamp": a.timestamp.isoformat() if a.timestamp else None,
                    }
                    for a in booking.actions
                ],
            }
        finally:
            session.close()

    # --- Helpers ---

    def _ledger(self, booking: Booking) -> BookingLedger:
        listing = booking.listing
        base_cost = self.calculator.base_cost_for(booking, listing)
        summary = reconcile(
            base_cost,
            booking.discount or 0,
            [b.amount for b in booking.bills],
            [p.amount for p in booking.payments],
        )
        deposit = calculate_deposit(listing.price, listing.price_unit, booking.unit_count)
        return BookingLedger(summary=summary, deposit_required=round(deposit, 2), currency=listing.currency)

    def _get_listing(self, session: Session, listing_id: int) -> Listing:
        listing = session.get(Listing, listing_id)
        if not listing:
            raise NotFoundError("Listing", listing_id)
        return listing

    def _get_booking(self, session: Session, booking_id: int) -> Booking:
        booking = session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _guest_for(self, session: Session, name: str | None, email: str | None) -> User:
        """Existing user with this email, or a new provisional guest account."""
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or "@" not in email:
            raise BookingValidationError("A new guest needs a name and a valid email address.")

        user = session.query(User).filter(func.lower(User.email) == email).first()
        if user is None:
            user = User(name=name, email=email, role="guest", status="provisional")
            session.add(user)
            session.flush()
            logger.info("Created provisional guest %s <%s>", user.id, email)
        return user

    def _ensure_editable(self, booking: Booking) -> None:
        if is_terminal(booking.status):
            raise BookingValidationError(f"A {booking.status} booking can no longer be changed.")

    def _validate_request(
        self, listing: Listing, start: date | None, end: date | None, guests: int, unit_count: int
    ) -> None:
        if start is None or end is None:
            raise BookingValidationError("Start and end dates are required.")
        if end < start:
            raise BookingValidationError("End date cannot be before start date.")
        if guests < 1:
            raise BookingValidationError("At least one guest is required.")
        if unit_count < 1:
            raise BookingValidationError("At least one unit is required.")
        capacity = listing.max_guests * unit_count
        if guests > capacity:
            raise BookingValidationError(
                f"{unit_count} unit(s) of {listing.name} hold at most {capacity} guest(s)."
            )

    def _assign_units(
        self,
        availability: AvailabilityResult,
        unit_count: int,
        requested: list[int] | None = None,
        current: list[int] | None = None,
    ) -> list[int]:
        """Pick the units for a booking from what is free.

        Explicit ids must all be free. Otherwise the current units are kept
        when they are still free and the count is unchanged, and the lowest
        free ids are taken when they are not.
        """
        free = availability.available_unit_ids
        if requested is not None:
            chosen = list(dict.fromkeys(requested))
            if len(chosen) != unit_count:
                raise BookingValidationError(f"Please select exactly {unit_count} unit(s).")
            taken = [unit_id for unit_id in chosen if unit_id not in free]
            if taken:
                raise BookingValidationError(f"Unit(s) {taken} are not available for these dates.")
            return sorted(chosen)

        if current and len(current) == unit_count and set(current) <= free:
            return sorted(current)

        if availability.available_count < unit_count:
            raise BookingValidationError(
                f"Only {availability.available_count} unit(s) available for these dates; "
                f"{unit_count} requested."
            )
        return sorted(free)[:unit_count]

    def _record(self, booking: Booking, actor: User | None, action: str, message: str) -> None:
        booking.actions.append(BookingAction(
            actor_id=actor.id if actor else None,
            actor_name=actor.name if actor else "System",
            action=action,
            message=message,
        ))
