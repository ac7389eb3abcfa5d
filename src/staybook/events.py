"""In-process booking events: what happened to a booking, listing or review."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    BILL_ADDED = "bill_added"
    PAYMENT_RECORDED = "payment_recorded"
    DISCOUNT_APPLIED = "discount_applied"
    REVIEW_SUBMITTED = "review_submitted"
    REVIEW_APPROVED = "review_approved"
    MESSAGE_QUEUED = "message_queued"


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[Event], None]


class EventBus:
    """Delivers each event to its subscribers synchronously, in subscription order.

    A failing subscriber is logged and skipped so the others still run.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: EventType, callback: Subscriber) -> None:
        if callback in self._subscribers[event_type]:
            return
        self._subscribers[event_type].append(callback)
        logger.debug("Subscribed %s to %s", getattr(callback, "__name__", callback), event_type.value)

    def unsubscribe(self, event_type: EventType, callback: Subscriber) -> None:
        if callback in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(callback)

    def publish(self, event: Event) -> None:
        subscribers = list(self._subscribers.get(event.event_type, []))
        logger.info("Publishing %s to %d subscriber(s)", event.event_type.value, len(subscribers))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Error in subscriber %s for event %s",
                    getattr(callback, "__name__", callback),
                    event.event_type.value,
                )


event_bus = EventBus()
