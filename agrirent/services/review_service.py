from flask import current_app
from sqlalchemy import func

from agrirent.errors import AlreadyReviewed, AppError, NotFound
from agrirent.extensions import db
from agrirent.models import Equipment, Review
from agrirent.services.transaction import apply_lock_timeout, entity_locks, unit_of_work


class ReviewService:
    @staticmethod
    def parse_rating(rating, label="Rating"):
        if isinstance(rating, bool):
            raise AppError(f"{label} must be an integer between 1 and 5.", 400)
        try:
            rating_int = int(rating)
        except (TypeError, ValueError) as exc:
            raise AppError(f"{label} must be an integer between 1 and 5.", 400) from exc
        if isinstance(rating, float) and rating != rating_int:
            raise AppError(f"{label} must be an integer between 1 and 5.", 400)
        if rating_int < 1 or rating_int > 5:
            raise AppError(f"{label} must be an integer between 1 and 5.", 400)
        return rating_int

    @staticmethod
    def append_review(equipment_id, reviewer_id, rating, comment):
        """Append a review and refresh the aggregate inside the caller's transaction."""
        equipment = Equipment.query.filter_by(id=equipment_id).with_for_update().populate_existing().first()
        if not equipment:
            raise NotFound("Equipment not found.")
        if Review.query.filter_by(equipment_id=equipment_id, reviewer_id=reviewer_id).first():
            raise AlreadyReviewed("Equipment already reviewed.")

        review = Review(
            equipment_id=equipment_id,
            reviewer_id=reviewer_id,
            rating=rating,
            comment=(comment or "").strip() or None,
        )
        db.session.add(review)
        db.session.flush()

        total, count = (
            db.session.query(func.coalesce(func.sum(Review.rating), 0), func.count(Review.id))
            .filter(Review.equipment_id == equipment_id)
            .one()
        )
        count = int(count or 0)
        equipment.rating_average = int(total) / count if count else 0.0
        equipment.rating_count = count
        return review

    @staticmethod
    def attach_review(equipment_id, reviewer_id, rating, comment=None):
        rating_int = ReviewService.parse_rating(rating)
        with entity_locks.hold("equipment", equipment_id), unit_of_work():
            apply_lock_timeout()
            review = ReviewService.append_review(equipment_id, reviewer_id, rating_int, comment)
            db.session.commit()
        current_app.logger.info("User %s reviewed equipment %s (%s/5)", reviewer_id, equipment_id, rating_int)
        return review
