"""Booking status state machine and the ledger gates on its transitions."""

from __future__ import annotations

from enum import Enum

from staybook.errors import InvalidTransitionError, TransitionBlockedError
from staybook.modules.ledger.reconciler import LedgerSummary


class BookingStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


def is_terminal(status: str | BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def check_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    current, target = BookingStatus(current), BookingStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)


def format_money(amount: float, currency: str = "") -> str:
    return f"{amount:,.2f} {currency}".strip()


def ensure_can_confirm(ledger: LedgerSummary, deposit_required: float, currency: str = "") -> None:
    if ledger.total_credited < deposit_required:
        raise TransitionBlockedError(
            f"A deposit of at least {format_money(deposit_required, currency)} is required to confirm.",
            threshold=deposit_required,
        )


def ensure_can_complete(ledger: LedgerSummary, currency: str = "") -> None:
    if ledger.balance > 0:
        raise TransitionBlockedError(
            "Cannot mark as completed with an outstanding balance of "
            f"{format_money(ledger.balance, currency)}.",
            threshold=0.0,
        )
