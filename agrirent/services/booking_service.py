import secrets
from contextlib import ExitStack
from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from agrirent.errors import AlreadyRated, AppError, Conflict, InvalidTransition, NotFound
from agrirent.extensions import db
from agrirent.models import Booking, BookingStatusEvent, Equipment
from agrirent.models.base import utcnow
from agrirent.models.enums import (
    BOOKING_TRANSITIONS,
    BookingStatus,
    BookingType,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
    Role,
)
from agrirent.services.access_policy import AccessPolicy, BookingAction
from agrirent.services.availability_service import AvailabilityService
from agrirent.services.notification_service import NotificationService
from agrirent.services.pricing import CENT, PricingCalculator, RateCard, as_utc, validate_interval
from agrirent.services.review_service import ReviewService
from agrirent.services.transaction import apply_lock_timeout, entity_locks, unit_of_work

ZERO = Decimal("0.00")


def _decimal(value, label):
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise AppError(f"Invalid {label} value.", 400) from exc


def _coordinate(value, label, bound):
    if value is None or value == "":
        raise AppError(f"{label.title()} is required.", 400)
    number = _decimal(value, label)
    if abs(number) > bound:
        raise AppError(f"{label.title()} out of range.", 400)
    return number


class BookingService:
    @staticmethod
    def parse_status(value):
        try:
            return BookingStatus(str(value or "").strip().lower())
        except ValueError as exc:
            raise InvalidTransition(f"Unknown booking status: {value}.") from exc

    @staticmethod
    def _parse_booking_type(value):
        try:
            return BookingType(str(value or BookingType.HOURLY.value).strip().lower())
        except ValueError as exc:
            raise AppError("Booking type must be hourly or daily.", 400) from exc

    @staticmethod
    def _parse_payment_method(value):
        try:
            return PaymentMethod(str(value or PaymentMethod.CASH.value).strip().lower())
        except ValueError as exc:
            raise AppError("Invalid payment method.", 400) from exc

    @staticmethod
    def _generate_booking_number(now):
        prefix = f"BK-{now:%y%m}-"
        for _ in range(current_app.config["BOOKING_NUMBER_ATTEMPTS"]):
            candidate = f"{prefix}{secrets.randbelow(10000):04d}"
            if not Booking.query.filter_by(booking_number=candidate).first():
                return candidate
        raise Conflict("Could not allocate a booking number. Retry the request.")

    @staticmethod
    def _is_repeat_customer(renter_id, equipment_id):
        return (
            Booking.query.filter_by(renter_id=renter_id, equipment_id=equipment_id)
            .filter(Booking.status == BookingStatus.COMPLETED.value)
            .first()
            is not None
        )

    @staticmethod
    def _notify_parties(booking, actor, title, message):
        for user_id in {booking.renter_id, booking.owner_id} - {actor.id}:
            NotificationService.push(user_id, title, message, booking_id=booking.id)

    @staticmethod
    def create_booking(
        actor,
        equipment_id,
        start_time,
        end_time,
        booking_type="hourly",
        operator_requested=False,
        delivery_requested=False,
        notes=None,
        payment_method=None,
        site=None,
    ):
        AccessPolicy.authorize_create_booking(actor)
        start, end = validate_interval(start_time, end_time)
        booking_type = BookingService._parse_booking_type(booking_type)
        method = BookingService._parse_payment_method(payment_method)
        site = site or {}
        site_latitude = _coordinate(site["latitude"], "latitude", 90) if site.get("latitude") is not None else None
        site_longitude = _coordinate(site["longitude"], "longitude", 180) if site.get("longitude") is not None else None

        with entity_locks.hold("equipment", equipment_id), unit_of_work():
            apply_lock_timeout()
            equipment = Equipment.query.filter_by(id=equipment_id).with_for_update().populate_existing().first()
            if not equipment:
                raise NotFound("Equipment not found.")

            quote = PricingCalculator.quote(
                RateCard.from_equipment(equipment),
                start,
                end,
                booking_type,
                operator=bool(operator_requested),
                delivery=bool(delivery_requested),
                repeat_customer=BookingService._is_repeat_customer(actor.id, equipment.id),
                tax_pct=current_app.config["BOOKING_TAX_PCT"],
            )

            now = utcnow()
            booking = Booking(
                booking_number=BookingService._generate_booking_number(now),
                equipment_id=equipment.id,
                renter_id=actor.id,
                owner_id=equipment.owner_id,
                status=BookingStatus.PENDING.value,
                booking_type=quote.booking_type,
                start_time=start,
                end_time=end,
                duration_hours=quote.duration_hours,
                duration_days=quote.duration_days,
                operator_requested=bool(operator_requested),
                delivery_requested=bool(delivery_requested),
                unit_rate=quote.unit_rate,
                base_price=quote.base_price,
                delivery_fee=quote.delivery_fee,
                operator_fee=quote.operator_fee,
                discount_pct=quote.discount_pct,
                discount=quote.discount,
                tax=quote.tax,
                total_amount=quote.total_amount,
                deposit=quote.deposit,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=method.value,
                paid_amount=ZERO,
                site_latitude=site_latitude,
                site_longitude=site_longitude,
                site_address=(site.get("address") or "").strip() or None,
                renter_note=(notes or "").strip() or None,
            )
            booking.history.append(
                BookingStatusEvent(status=BookingStatus.PENDING.value, actor_id=actor.id, created_at=now)
            )
            db.session.add(booking)
            AvailabilityService.reserve(equipment, booking, start, end)
            db.session.flush()

            NotificationService.push(
                equipment.owner_id,
                "New booking request",
                f"You received booking {booking.booking_number} for {equipment.name}.",
                booking_id=booking.id,
            )
            db.session.commit()

        current_app.logger.info(
            "Booking %s created by user %s for equipment %s", booking.booking_number, actor.id, equipment_id
        )
        return booking

    @staticmethod
    def _load_for_update(booking_id):
        booking = Booking.query.filter_by(id=booking_id).with_for_update().populate_existing().first()
        if not booking:
            raise NotFound("Booking not found.")
        return booking

    @staticmethod
    def _mutate(booking_id, mutate):
        """Run ``mutate(booking, stack)`` as one locked, versioned commit.

        A concurrent writer that bumps the version makes the commit stale; the
        whole read-validate-write is retried and gives up with ``Conflict``.
        """
        max_attempts = max(1, int(current_app.config["BOOKING_MAX_RETRIES"]))
        with entity_locks.hold("booking", booking_id):
            for attempt in range(1, max_attempts + 1):
                try:
                    with ExitStack() as stack, unit_of_work():
                        apply_lock_timeout()
                        booking = BookingService._load_for_update(booking_id)
                        mutate(booking, stack)
                        db.session.commit()
                        return booking
                except StaleDataError:
                    current_app.logger.warning(
                        "Booking %s changed concurrently (attempt %s/%s)", booking_id, attempt, max_attempts
                    )
        raise Conflict("Booking was modified concurrently. Retry the request.")

    @staticmethod
    def transition_booking(booking_id, target_status, actor, notes=None):
        notes = (notes or "").strip() or None

        def apply(booking, stack):
            # Order is load, policy, then graph.
            AccessPolicy.authorize(actor, booking, BookingAction.VIEW)
            target = BookingService.parse_status(target_status)
            AccessPolicy.authorize(actor, booking, BookingAction.TRANSITION, target)
            current = BookingStatus(booking.status)
            if target not in BOOKING_TRANSITIONS[current]:
                raise InvalidTransition(f"Invalid status transition from {current.value} to {target.value}.")

            now = utcnow()
            booking.status = target.value
            booking.history.append(
                BookingStatusEvent(status=target.value, actor_id=actor.id, notes=notes, created_at=now)
            )
            BookingService._apply_side_effects(booking, target, actor, now, notes, stack)

        booking = BookingService._mutate(booking_id, apply)
        current_app.logger.info("Booking %s moved to %s by user %s", booking.booking_number, booking.status, actor.id)
        return booking

    @staticmethod
    def _apply_side_effects(booking, target, actor, now, notes, stack):
        if target in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
            stack.enter_context(entity_locks.hold("equipment", booking.equipment_id))
            AvailabilityService.release(booking.equipment_id, booking.id)

        if target is BookingStatus.CANCELLED:
            paid = Decimal(str(booking.paid_amount or 0))
            booking.cancellation_reason = notes
            booking.cancelled_by_id = actor.id
            booking.cancelled_at = now
            booking.refund_amount = paid
            booking.refund_status = (RefundStatus.PENDING if paid > 0 else RefundStatus.NOT_APPLICABLE).value

        if target is BookingStatus.COMPLETED and booking.payment_method == PaymentMethod.CASH.value:
            booking.payment_status = PaymentStatus.PAID.value
            booking.paid_amount = booking.total_amount
            booking.paid_at = now

        label = target.value.replace("_", " ")
        BookingService._notify_parties(
            booking,
            actor,
            f"Booking {label}",
            f"Booking {booking.booking_number} is now {label}.",
        )

    @staticmethod
    def update_tracking(booking_id, actor, latitude, longitude, estimated_arrival=None):
        lat = _coordinate(latitude, "latitude", 90)
        lng = _coordinate(longitude, "longitude", 180)
        if estimated_arrival is not None and not isinstance(estimated_arrival, datetime):
            raise AppError("Estimated arrival must be a timestamp.", 400)

        def apply(booking, _stack):
            AccessPolicy.authorize(actor, booking, BookingAction.TRACK)
            booking.current_latitude = lat
            booking.current_longitude = lng
            booking.location_updated_at = utcnow()
            if estimated_arrival is not None:
                booking.estimated_arrival = as_utc(estimated_arrival)

        booking = BookingService._mutate(booking_id, apply)
        NotificationService.broadcast_tracking(booking)
        return booking

    @staticmethod
    def add_rating(booking_id, actor, equipment_rating, equipment_review=None, operator_rating=None, operator_review=None):
        equipment_rating = ReviewService.parse_rating(equipment_rating, "Equipment rating")
        if operator_rating is not None:
            operator_rating = ReviewService.parse_rating(operator_rating, "Operator rating")

        def apply(booking, stack):
            AccessPolicy.authorize(actor, booking, BookingAction.RATE)
            if booking.rated_at is not None:
                raise AlreadyRated("Booking already rated.")
            booking.equipment_rating = equipment_rating
            booking.equipment_review = (equipment_review or "").strip() or None
            booking.operator_rating = operator_rating
            booking.operator_review = (operator_review or "").strip() or None
            booking.rated_at = utcnow()
            stack.enter_context(entity_locks.hold("equipment", booking.equipment_id))
            ReviewService.append_review(booking.equipment_id, actor.id, equipment_rating, equipment_review)

        booking = BookingService._mutate(booking_id, apply)
        current_app.logger.info("Booking %s rated %s/5 by user %s", booking.booking_number, equipment_rating, actor.id)
        return booking

    @staticmethod
    def record_payment(booking_id, actor, amount, method=None, transaction_id=None):
        amount = _decimal(amount, "amount").quantize(CENT)
        if amount <= 0:
            raise AppError("Payment amount must be positive.", 400)
        payment_method = BookingService._parse_payment_method(method) if method else None

        def apply(booking, _stack):
            AccessPolicy.authorize(actor, booking, BookingAction.PAY)
            if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.REJECTED.value):
                raise AppError("Cannot record payment for a cancelled or rejected booking.", 409)
            if booking.payment_status == PaymentStatus.REFUNDED.value:
                raise AppError("Booking payment was already refunded.", 409)
            total = Decimal(str(booking.total_amount))
            paid = Decimal(str(booking.paid_amount or 0)) + amount
            if paid > total:
                raise AppError("Payment exceeds booking total.", 400)

            booking.paid_amount = paid
            if payment_method is not None:
                booking.payment_method = payment_method.value
            if transaction_id:
                booking.transaction_id = str(transaction_id).strip()
            if paid == total:
                booking.payment_status = PaymentStatus.PAID.value
                booking.paid_at = utcnow()
            else:
                booking.payment_status = PaymentStatus.PARTIALLY_PAID.value

        return BookingService._mutate(booking_id, apply)

    @staticmethod
    def update_refund_status(booking_id, actor, refund_status):
        try:
            status = RefundStatus(str(refund_status or "").strip().lower())
        except ValueError as exc:
            raise AppError("Invalid refund status.", 400) from exc

        def apply(booking, _stack):
            AccessPolicy.authorize(actor, booking, BookingAction.REFUND)
            if booking.status != BookingStatus.CANCELLED.value:
                raise AppError("Refunds apply to cancelled bookings only.", 409)
            booking.refund_status = status.value
            if status is RefundStatus.PROCESSED and Decimal(str(booking.refund_amount or 0)) > 0:
                booking.payment_status = PaymentStatus.REFUNDED.value

        return BookingService._mutate(booking_id, apply)

    @staticmethod
    def get_booking(booking_id, actor):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound("Booking not found.")
        AccessPolicy.authorize(actor, booking, BookingAction.VIEW)
        return booking

    @staticmethod
    def list_bookings(actor, status=None, date_from=None, date_to=None):
        query = Booking.query
        if actor.role is Role.FARMER:
            query = query.filter(Booking.renter_id == actor.id)
        elif actor.role is Role.OWNER:
            query = query.filter(Booking.owner_id == actor.id)
        elif not actor.is_admin:
            return []

        if status:
            try:
                query = query.filter(Booking.status == BookingStatus(str(status).strip().lower()).value)
            except ValueError as exc:
                raise AppError(f"Unknown booking status: {status}.", 400) from exc
        if date_from is not None:
            query = query.filter(Booking.start_time >= as_utc(date_from))
        if date_to is not None:
            query = query.filter(Booking.start_time <= as_utc(date_to))

        rows = query.order_by(Booking.start_time.desc(), Booking.id.desc()).all()
        return [booking for booking in rows if AccessPolicy.can_view(actor, booking)]
