from agrirent.extensions import db
from agrirent.models.base import PKType, TimestampMixin


class Equipment(TimestampMixin, db.Model):
    __tablename__ = "equipment"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    owner_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(140), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(24), nullable=False, default="tractor", index=True)
    sub_category = db.Column(db.String(80), nullable=True)
    manufacturer = db.Column(db.String(120), nullable=False)
    model = db.Column(db.String(120), nullable=False)
    year = db.Column(db.Integer, nullable=True)
    specifications = db.Column(db.JSON, nullable=False, default=dict)
    features = db.Column(db.JSON, nullable=False, default=list)

    latitude = db.Column(db.Numeric(10, 7), nullable=True)
    longitude = db.Column(db.Numeric(10, 7), nullable=True)
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(12), nullable=True, index=True)
    country = db.Column(db.String(80), nullable=True)

    rate_per_hour = db.Column(db.Numeric(10, 2), nullable=False)
    rate_per_day = db.Column(db.Numeric(10, 2), nullable=True)
    rate_per_week = db.Column(db.Numeric(12, 2), nullable=True)
    minimum_rental_hours = db.Column(db.Numeric(6, 2), nullable=False, default=1)
    deposit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    operator_included = db.Column(db.Boolean, nullable=False, default=False)
    operator_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    operator_fee_basis = db.Column(db.String(12), nullable=False, default="flat")

    delivery_available = db.Column(db.Boolean, nullable=False, default=False)
    delivery_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    max_delivery_distance_km = db.Column(db.Numeric(8, 2), nullable=True)

    is_available = db.Column(db.Boolean, nullable=False, default=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    rating_average = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)

    owner = db.relationship("User", back_populates="equipment")
    bookings = db.relationship("Booking", back_populates="equipment", lazy="dynamic")
    reviews = db.relationship("Review", back_populates="equipment", lazy="dynamic", order_by="Review.id")
    discounts = db.relationship(
        "EquipmentDiscount",
        back_populates="equipment",
        cascade="all, delete-orphan",
        order_by="EquipmentDiscount.id",
    )
    schedule = db.relationship("EquipmentScheduleEntry", back_populates="equipment", lazy="dynamic")

    __table_args__ = (
        db.Index("ix_equipment_owner_available", "owner_id", "is_available"),
        db.Index("ix_equipment_category_available", "category", "is_available"),
        db.CheckConstraint("rate_per_hour > 0", name="ck_equipment_rate_positive"),
    )


class EquipmentDiscount(TimestampMixin, db.Model):
    __tablename__ = "equipment_discounts"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    equipment_id = db.Column(PKType, db.ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = db.Column(db.String(24), nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    starts_on = db.Column(db.Date, nullable=True)
    ends_on = db.Column(db.Date, nullable=True)
    min_rental_hours = db.Column(db.Numeric(8, 2), nullable=True)

    equipment = db.relationship("Equipment", back_populates="discounts")

    __table_args__ = (
        db.CheckConstraint("percentage > 0 AND percentage <= 100", name="ck_discount_percentage_range"),
    )


class EquipmentScheduleEntry(TimestampMixin, db.Model):
    """Interval committed to a booking; cleared when the booking is released."""

    __tablename__ = "equipment_schedule_entries"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    equipment_id = db.Column(PKType, db.ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    is_booked = db.Column(db.Boolean, nullable=False, default=True, index=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    equipment = db.relationship("Equipment", back_populates="schedule")
    booking = db.relationship("Booking", back_populates="schedule_entry")

    __table_args__ = (
        db.Index("ix_schedule_equipment_window", "equipment_id", "start_time", "end_time"),
        db.CheckConstraint("end_time > start_time", name="ck_schedule_interval_positive"),
    )
