"""Database models."""

from staybook.models.booking import PAYMENT_METHODS, Bill, Booking, BookingAction, Payment
from staybook.models.listing import CURRENCIES, LISTING_TYPES, InventoryUnit, Listing
from staybook.models.message import MessageLog
from staybook.models.review import Review
from staybook.models.user import User

__all__ = [
    "Bill",
    "Booking",
    "BookingAction",
    "CURRENCIES",
    "InventoryUnit",
    "LISTING_TYPES",
    "Listing",
    "MessageLog",
    "PAYMENT_METHODS",
    "Payment",
    "Review",
    "User",
]
