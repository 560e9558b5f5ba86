from flask_login import UserMixin

from agrirent.extensions import db
from agrirent.models.base import PKType, TimestampMixin


class User(UserMixin, TimestampMixin, db.Model):
    """Account mirrored from the identity service; only read for authorization."""

    __tablename__ = "users"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(15), nullable=False, index=True, default="")
    role = db.Column(db.String(24), nullable=False, index=True)
    is_active_user = db.Column(db.Boolean, nullable=False, default=True)

    equipment = db.relationship("Equipment", back_populates="owner", lazy="dynamic")
    bookings = db.relationship("Booking", back_populates="renter", lazy="dynamic", foreign_keys="Booking.renter_id")
    owner_bookings = db.relationship("Booking", back_populates="owner", lazy="dynamic", foreign_keys="Booking.owner_id")
    notifications = db.relationship("Notification", back_populates="user", lazy="dynamic")

    @property
    def is_active(self):
        return bool(self.is_active_user)
