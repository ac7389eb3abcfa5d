"""Exceptions raised by booking operations."""

from __future__ import annotations


class BookingError(Exception):
    """Base class for errors reported back to the caller."""


class BookingValidationError(BookingError, ValueError):
    """Rejected input: bad dates, too many units, discount above the cap."""


class InvalidTransitionError(BookingError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move a {current} booking to {target}.")
        self.current = current
        self.target = target


class TransitionBlockedError(BookingError):
    """A policy gate (deposit or outstanding balance) is not met."""

    def __init__(self, message: str, threshold: float) -> None:
        super().__init__(message)
        self.threshold = threshold


class PermissionDeniedError(BookingError):
    def __init__(self, permission: str) -> None:
        super().__init__(f"Missing permission {permission!r}.")
        self.permission = permission


class NotFoundError(BookingError, LookupError):
    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} {ident} not found.")
        self.kind = kind
        self.ident = ident
