from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from agrirent.decorators import current_actor, role_required
from agrirent.errors import AppError
from agrirent.extensions import limiter
from agrirent.services import BookingService
from agrirent.utils import iso, json_payload, money, parse_datetime

api_booking_bp = Blueprint("api_booking", __name__)


def serialize_booking(b):
    return {
        "id": b.id,
        "booking_number": b.booking_number,
        "equipment_id": b.equipment_id,
        "renter_id": b.renter_id,
        "owner_id": b.owner_id,
        "status": b.status,
        "booking_type": b.booking_type,
        "start_time": iso(b.start_time),
        "end_time": iso(b.end_time),
        "duration": {
            "hours": money(b.duration_hours),
            "days": b.duration_days,
        },
        "pricing": {
            "unit_rate": money(b.unit_rate),
            "base_price": money(b.base_price),
            "delivery_fee": money(b.delivery_fee),
            "operator_fee": money(b.operator_fee),
            "discount_pct": money(b.discount_pct),
            "discount": money(b.discount),
            "tax": money(b.tax),
            "total_amount": money(b.total_amount),
            "deposit": money(b.deposit),
        },
        "payment": {
            "status": b.payment_status,
            "method": b.payment_method,
            "transaction_id": b.transaction_id,
            "paid_amount": money(b.paid_amount),
            "paid_at": iso(b.paid_at),
        },
        "site": {
            "coordinates": [money(b.site_longitude), money(b.site_latitude)] if b.site_latitude is not None else None,
            "address": b.site_address,
        },
        "tracking": {
            "current_location": (
                [money(b.current_longitude), money(b.current_latitude)] if b.current_latitude is not None else None
            ),
            "last_updated": iso(b.location_updated_at),
            "estimated_arrival": iso(b.estimated_arrival),
        },
        "rating": (
            {
                "equipment": {"rating": b.equipment_rating, "review": b.equipment_review},
                "operator": {"rating": b.operator_rating, "review": b.operator_review},
                "rated_at": iso(b.rated_at),
            }
            if b.rated_at
            else None
        ),
        "cancellation": (
            {
                "reason": b.cancellation_reason,
                "cancelled_by": b.cancelled_by_id,
                "cancelled_at": iso(b.cancelled_at),
                "refund_amount": money(b.refund_amount),
                "refund_status": b.refund_status,
            }
            if b.cancelled_at
            else None
        ),
        "notes": b.renter_note,
        "status_history": [
            {
                "status": event.status,
                "timestamp": iso(event.created_at),
                "updated_by": event.actor_id,
                "notes": event.notes,
            }
            for event in b.history
        ],
        "created_at": iso(b.created_at),
    }


@api_booking_bp.post("")
@login_required
@role_required("farmer")
@limiter.limit(lambda: current_app.config["BOOKING_CREATE_RATE_LIMIT"])
def create_booking():
    payload = json_payload()
    equipment_id = payload.get("equipment_id", payload.get("equipment"))
    try:
        equipment_id = int(equipment_id)
    except (TypeError, ValueError) as exc:
        raise AppError("Equipment is required.", 400) from exc
    location = payload.get("location") or {}
    if not isinstance(location, dict):
        raise AppError("Location must be an object.", 400)
    coordinates = location.get("coordinates") or [None, None]
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        raise AppError("Coordinates must be [longitude, latitude].", 400)
    booking = BookingService.create_booking(
        actor=current_actor(),
        equipment_id=equipment_id,
        start_time=parse_datetime(payload.get("start_time", payload.get("startTime")), "Start time"),
        end_time=parse_datetime(payload.get("end_time", payload.get("endTime")), "End time"),
        booking_type=payload.get("booking_type", payload.get("bookingType", "hourly")),
        operator_requested=bool(payload.get("operator_requested", False)),
        delivery_requested=bool(payload.get("delivery_requested", False)),
        notes=payload.get("notes"),
        payment_method=payload.get("payment_method", payload.get("paymentMethod")),
        site={"longitude": coordinates[0], "latitude": coordinates[1], "address": location.get("address")},
    )
    return jsonify(serialize_booking(booking)), 201


@api_booking_bp.get("")
@login_required
def list_bookings():
    rows = BookingService.list_bookings(
        current_actor(),
        status=request.args.get("status"),
        date_from=parse_datetime(request.args.get("start_date"), "Start date", required=False),
        date_to=parse_datetime(request.args.get("end_date"), "End date", required=False),
    )
    return jsonify({"count": len(rows), "items": [serialize_booking(b) for b in rows]})


@api_booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id):
    booking = BookingService.get_booking(booking_id, current_actor())
    return jsonify(serialize_booking(booking))


@api_booking_bp.put("/<int:booking_id>/status")
@login_required
def update_status(booking_id):
    payload = json_payload()
    if not payload.get("status"):
        raise AppError("Please provide status.", 400)
    booking = BookingService.transition_booking(
        booking_id,
        payload["status"],
        current_actor(),
        notes=payload.get("notes"),
    )
    return jsonify(serialize_booking(booking))


@api_booking_bp.put("/<int:booking_id>/tracking")
@login_required
def update_tracking(booking_id):
    payload = json_payload()
    location = payload.get("current_location", payload.get("currentLocation")) or {}
    coordinates = location.get("coordinates") if isinstance(location, dict) else None
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        raise AppError("Please provide current location coordinates.", 400)
    booking = BookingService.update_tracking(
        booking_id,
        current_actor(),
        latitude=coordinates[1],
        longitude=coordinates[0],
        estimated_arrival=parse_datetime(
            payload.get("estimated_arrival", payload.get("estimatedArrival")), "Estimated arrival", required=False
        ),
    )
    return jsonify(serialize_booking(booking))


@api_booking_bp.post("/<int:booking_id>/rating")
@login_required
def add_rating(booking_id):
    payload = json_payload()
    booking = BookingService.add_rating(
        booking_id,
        current_actor(),
        equipment_rating=payload.get("equipment_rating", payload.get("equipmentRating")),
        equipment_review=payload.get("equipment_review", payload.get("equipmentReview")),
        operator_rating=payload.get("operator_rating", payload.get("operatorRating")),
        operator_review=payload.get("operator_review", payload.get("operatorReview")),
    )
    return jsonify(serialize_booking(booking))


@api_booking_bp.put("/<int:booking_id>/payment")
@login_required
def record_payment(booking_id):
    payload = json_payload()
    booking = BookingService.record_payment(
        booking_id,
        current_actor(),
        amount=payload.get("amount"),
        method=payload.get("method"),
        transaction_id=payload.get("transaction_id"),
    )
    return jsonify(serialize_booking(booking))


@api_booking_bp.put("/<int:booking_id>/refund")
@login_required
def update_refund(booking_id):
    payload = json_payload()
    booking = BookingService.update_refund_status(booking_id, current_actor(), payload.get("refund_status"))
    return jsonify(serialize_booking(booking))
