"""Tests for the booking status state machine and its ledger gates."""

import pytest

from staybook.errors import InvalidTransitionError, TransitionBlockedError
from staybook.modules.bookings.lifecycle import (
    TRANSITIONS,
    BookingStatus,
    check_transition,
    ensure_can_complete,
    ensure_can_confirm,
    format_money,
    is_terminal,
)
from staybook.modules.ledger.reconciler import reconcile


@pytest.mark.parametrize(
    "current, target",
    [
        ("Pending", "Confirmed"),
        ("Pending", "Cancelled"),
        ("Confirmed", "Completed"),
        ("Confirmed", "Cancelled"),
    ],
)
def test_allowed_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize(
    "current, target",
    [
        ("Pending", "Completed"),
        ("Confirmed", "Pending"),
        ("Completed", "Cancelled"),
        ("Cancelled", "Confirmed"),
        ("Cancelled", "Pending"),
    ],
)
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.target == target


def test_terminal_statuses_have_no_exits():
    for status in BookingStatus:
        assert is_terminal(status) == (not TRANSITIONS[status])
    assert is_terminal("Completed")
    assert is_terminal("Cancelled")
    assert not is_terminal("Pending")


def test_confirm_blocked_below_deposit():
    ledger = reconcile(400, 0, [], [150])
    with pytest.raises(TransitionBlockedError, match="200.00 USD") as exc_info:
        ensure_can_confirm(ledger, 200, "USD")
    assert exc_info.value.threshold == 200


def test_confirm_allowed_at_deposit():
    ensure_can_confirm(reconcile(400, 0, [], [200]), 200)


def test_discount_counts_toward_deposit():
    # 10% of 1000 plus a 100 payment covers a 200 deposit
    ensure_can_confirm(reconcile(1000, 10, [], [100]), 200)


def test_complete_blocked_with_balance():
    ledger = reconcile(400, 10, [50], [100, 200])
    with pytest.raises(TransitionBlockedError, match="outstanding balance of 110.00"):
        ensure_can_complete(ledger)


def test_complete_allowed_when_settled_or_overpaid():
    ensure_can_complete(reconcile(400, 0, [], [400]))
    ensure_can_complete(reconcile(400, 0, [], [500]))


def test_format_money():
    assert format_money(45000, "NGN") == "45,000.00 NGN"
    assert format_money(12.5) == "12.50"
