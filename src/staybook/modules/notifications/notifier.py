"""Booking notifications - template rendering and message queueing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from staybook.database import get_session
from staybook.events import Event, EventBus, EventType, event_bus
from staybook.models.booking import Booking
from staybook.models.message import MessageLog
from staybook.modules.pricing.calculator import PriceCalculator, stay_duration

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates"

SUBJECTS = {
    "booking_request": "Booking Request Received for {listing}",
    "booking_confirmation": "Booking Confirmed: Your Reservation at {listing}",
    "booking_cancellation": "Booking Cancelled: {listing}",
}


class BookingNotifier:
    """Queues booking emails for the guest. Delivery happens elsewhere."""

    def __init__(self, bus: EventBus | None = None, calculator: PriceCalculator | None = None) -> None:
        self.bus = bus or event_bus
        self.calculator = calculator or PriceCalculator()
        self._jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(default=False),
        )

    def setup_event_handlers(self) -> None:
        """Subscribe to booking events for automatic message triggering."""
        self.bus.subscribe(EventType.BOOKING_CREATED, self._on_booking_created)
        self.bus.subscribe(EventType.BOOKING_CONFIRMED, self._on_booking_confirmed)
        self.bus.subscribe(EventType.BOOKING_CANCELLED, self._on_booking_cancelled)

    def remove_event_handlers(self) -> None:
        self.bus.unsubscribe(EventType.BOOKING_CREATED, self._on_booking_created)
        self.bus.unsubscribe(EventType.BOOKING_CONFIRMED, self._on_booking_confirmed)
        self.bus.unsubscribe(EventType.BOOKING_CANCELLED, self._on_booking_cancelled)

    def _on_booking_created(self, event: Event) -> None:
        booking_id = event.data.get("booking_id")
        if not booking_id:
            return
        # Walk-ins created as Confirmed go straight to the confirmation
        if event.data.get("status") == "Confirmed":
            self.queue_message(booking_id, "booking_confirmation")
        else:
            self.queue_message(booking_id, "booking_request")

    def _on_booking_confirmed(self, event: Event) -> None:
        booking_id = event.data.get("booking_id")
        if booking_id:
            self.queue_message(booking_id, "booking_confirmation")

    def _on_booking_cancelled(self, event: Event) -> None:
        booking_id = event.data.get("booking_id")
        if booking_id:
            self.queue_message(booking_id, "booking_cancellation")

    def queue_message(self, booking_id: int, template_name: str) -> MessageLog | None:
        """Render a template and queue it for the booking's guest."""
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if not booking:
                logger.warning("Booking %s not found, skipping message", booking_id)
                return None
            if not booking.user or not booking.user.email:
                logger.info("Booking %s has no guest email, skipping %s", booking_id, template_name)
                return None

            existing = (
                session.query(MessageLog)
                .filter(
                    MessageLog.booking_id == booking_id,
                    MessageLog.template_name == template_name,
                )
                .first()
            )
            if existing:
                logger.debug("Message %s already queued for booking %s", template_name, booking_id)
                return existing

            body = self._render_template(template_name, booking)
            if body is None:
                return None

            subject = SUBJECTS.get(template_name, "{listing}").format(listing=booking.listing.name)
            msg = MessageLog(
                booking_id=booking_id,
                template_name=template_name,
                channel="email",
                recipient=booking.user.email,
                subject=subject,
                body=body,
                status="queued",
                scheduled_at=datetime.now(timezone.utc),
            )
            session.add(msg)
            session.commit()
            logger.info("Queued %s message for booking %s", template_name, booking_id)

            self.bus.publish(Event(
                event_type=EventType.MESSAGE_QUEUED,
                data={"message_id": msg.id, "template": template_name},
            ))
            return msg
        finally:
            session.close()

    def _render_template(self, template_name: str, booking: Booking) -> str | None:
        """Render a Jinja2 message template."""
        filename = f"{template_name}.txt"
        try:
            template = self._jinja_env.get_template(filename)
        except TemplateNotFound:
            logger.warning("Template not found: %s", filename)
            return None

        listing = booking.listing
        duration = stay_duration(booking.start_date, booking.end_date)
        base_cost = self.calculator.base_cost_for(booking, listing)
        context = {
            "guest_name": booking.user.name if booking.user else "Guest",
            "booking_id": booking.id,
            "listing_name": listing.name,
            "location": listing.location,
            "start_date": booking.start_date.strftime("%B %d, %Y"),
            "end_date": booking.end_date.strftime("%B %d, %Y"),
            "duration_days": duration.duration_days,
            "nights": duration.nights,
            "price_unit": listing.price_unit,
            "guests": booking.guests,
            "units": booking.unit_count,
            "estimated_cost": f"{base_cost:,.2f} {listing.currency}",
            "status": booking.status,
        }
        return template.render(**context)
