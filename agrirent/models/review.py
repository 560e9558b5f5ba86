from agrirent.extensions import db
from agrirent.models.base import PKType, TimestampMixin


class Review(TimestampMixin, db.Model):
    __tablename__ = "reviews"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    equipment_id = db.Column(PKType, db.ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = db.Column(db.SmallInteger, nullable=False)
    comment = db.Column(db.Text, nullable=True)

    equipment = db.relationship("Equipment", back_populates="reviews")
    reviewer = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("equipment_id", "reviewer_id", name="uq_review_equipment_reviewer"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_range"),
    )
