from agrirent.extensions import db
from agrirent.models.base import PKType, TimestampMixin, utcnow


class Booking(TimestampMixin, db.Model):
    __tablename__ = "bookings"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_number = db.Column(db.String(16), nullable=False, unique=True, index=True)
    equipment_id = db.Column(PKType, db.ForeignKey("equipment.id", ondelete="RESTRICT"), nullable=False, index=True)
    renter_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    owner_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    booking_type = db.Column(db.String(12), nullable=False, default="hourly")
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_hours = db.Column(db.Numeric(10, 2), nullable=False)
    duration_days = db.Column(db.Integer, nullable=True)

    operator_requested = db.Column(db.Boolean, nullable=False, default=False)
    delivery_requested = db.Column(db.Boolean, nullable=False, default=False)
    unit_rate = db.Column(db.Numeric(10, 2), nullable=False)
    base_price = db.Column(db.Numeric(12, 2), nullable=False)
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    operator_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    deposit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(24), nullable=False, default="cash")
    transaction_id = db.Column(db.String(120), nullable=True)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    site_latitude = db.Column(db.Numeric(10, 7), nullable=True)
    site_longitude = db.Column(db.Numeric(10, 7), nullable=True)
    site_address = db.Column(db.String(255), nullable=True)

    current_latitude = db.Column(db.Numeric(10, 7), nullable=True)
    current_longitude = db.Column(db.Numeric(10, 7), nullable=True)
    location_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_arrival = db.Column(db.DateTime(timezone=True), nullable=True)

    renter_note = db.Column(db.Text, nullable=True)

    equipment_rating = db.Column(db.SmallInteger, nullable=True)
    equipment_review = db.Column(db.Text, nullable=True)
    operator_rating = db.Column(db.SmallInteger, nullable=True)
    operator_review = db.Column(db.Text, nullable=True)
    rated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=True)
    refund_status = db.Column(db.String(24), nullable=True)

    version_id = db.Column(db.Integer, nullable=False)

    equipment = db.relationship("Equipment", back_populates="bookings")
    renter = db.relationship("User", back_populates="bookings", foreign_keys=[renter_id])
    owner = db.relationship("User", back_populates="owner_bookings", foreign_keys=[owner_id])
    history = db.relationship(
        "BookingStatusEvent",
        back_populates="booking",
        order_by="BookingStatusEvent.id",
        cascade="all, delete-orphan",
    )
    schedule_entry = db.relationship("EquipmentScheduleEntry", back_populates="booking", uselist=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        db.Index("ix_bookings_renter_status", "renter_id", "status"),
        db.Index("ix_bookings_owner_status", "owner_id", "status"),
        db.Index("ix_bookings_equipment_window", "equipment_id", "start_time", "end_time"),
        db.CheckConstraint("end_time > start_time", name="ck_booking_interval_positive"),
        db.CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        db.CheckConstraint(
            "equipment_rating IS NULL OR (equipment_rating >= 1 AND equipment_rating <= 5)",
            name="ck_booking_equipment_rating_range",
        ),
    )


class BookingStatusEvent(db.Model):
    """Append-only status history entry."""

    __tablename__ = "booking_status_events"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False)
    actor_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    booking = db.relationship("Booking", back_populates="history")
