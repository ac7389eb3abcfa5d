"""Listing reviews: submission, moderation and rating upkeep."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from staybook.database import get_session
from staybook.errors import BookingValidationError, NotFoundError
from staybook.events import Event, EventBus, EventType, event_bus
from staybook.models.listing import Listing
from staybook.models.review import Review
from staybook.models.user import User
from staybook.modules.permissions.authorizer import Authorizer

logger = logging.getLogger(__name__)


class ReviewManager:
    def __init__(self, authorizer: Authorizer | None = None, bus: EventBus | None = None) -> None:
        self.authorizer = authorizer or Authorizer()
        self.bus = bus or event_bus

    def submit_review(self, actor: User, listing_id: int, rating: int, comment: str = "") -> Review:
        """Store a review awaiting approval. It does not count toward the rating yet."""
        self.authorizer.require(actor, "review:create:own")
        if not 1 <= rating <= 5:
            raise BookingValidationError("Rating must be between 1 and 5.")

        session = get_session()
        try:
            if session.get(Listing, listing_id) is None:
                raise NotFoundError("Listing", listing_id)
            review = Review(
                listing_id=listing_id,
                user_id=actor.id,
                author=actor.name,
                rating=rating,
                comment=comment.strip(),
                status="pending",
            )
            session.add(review)
            session.commit()
            logger.info("Review %s submitted for listing %s", review.id, listing_id)

            self.bus.publish(Event(
                event_type=EventType.REVIEW_SUBMITTED,
                data={"review_id": review.id, "listing_id": listing_id, "rating": rating},
            ))
            return review
        finally:
            session.close()

    def approve_review(self, actor: User, review_id: int) -> Review:
        self.authorizer.require(actor, "review:approve")
        session = get_session()
        try:
            review = self._get_review(session, review_id)
            review.status = "approved"
            session.flush()
            self._refresh_rating(session, review.listing_id)
            session.commit()

            self.bus.publish(Event(
                event_type=EventType.REVIEW_APPROVED,
                data={"review_id": review.id, "listing_id": review.listing_id},
            ))
            return review
        finally:
            session.close()

    def delete_review(self, actor: User, review_id: int) -> None:
        self.authorizer.require(actor, "review:delete")
        session = get_session()
        try:
            review = self._get_review(session, review_id)
            listing_id = review.listing_id
            session.delete(review)
            session.flush()
            self._refresh_rating(session, listing_id)
            session.commit()
            logger.info("Deleted review %s", review_id)
        finally:
            session.close()

    def _get_review(self, session: Session, review_id: int) -> Review:
        review = session.get(Review, review_id)
        if not review:
            raise NotFoundError("Review", review_id)
        return review

    def _refresh_rating(self, session: Session, listing_id: int) -> float:
        """Mean of approved ratings, one decimal; 0 with none approved."""
        average = (
            session.query(func.avg(Review.rating))
            .filter(Review.listing_id == listing_id, Review.status == "approved")
            .scalar()
        )
        rating = round(float(average), 1) if average is not None else 0.0
        listing = session.get(Listing, listing_id)
        if listing:
            listing.rating = rating
        return rating
