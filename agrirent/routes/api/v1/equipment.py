from flask import Blueprint, jsonify, request
from flask_login import login_required

from agrirent.decorators import current_actor, role_required
from agrirent.extensions import cache
from agrirent.models import Review
from agrirent.services import AvailabilityService, EquipmentService, ReviewService
from agrirent.utils import iso, json_payload, money, parse_datetime

api_equipment_bp = Blueprint("api_equipment", __name__)


def serialize_equipment(e, with_reviews=False):
    data = {
        "id": e.id,
        "owner_id": e.owner_id,
        "owner_name": e.owner.full_name if e.owner else None,
        "name": e.name,
        "description": e.description,
        "category": e.category,
        "sub_category": e.sub_category,
        "manufacturer": e.manufacturer,
        "model": e.model,
        "year": e.year,
        "specifications": e.specifications or {},
        "features": e.features or [],
        "location": {
            "coordinates": [money(e.longitude), money(e.latitude)] if e.latitude is not None else None,
            "address": {
                "street": e.street,
                "city": e.city,
                "state": e.state,
                "postal_code": e.postal_code,
                "country": e.country,
            },
        },
        "pricing": {
            "rate_per_hour": money(e.rate_per_hour),
            "rate_per_day": money(e.rate_per_day),
            "rate_per_week": money(e.rate_per_week),
            "minimum_rental_hours": money(e.minimum_rental_hours),
            "deposit": money(e.deposit),
            "discounts": [
                {
                    "type": d.kind,
                    "percentage": money(d.percentage),
                    "start_date": iso(d.starts_on),
                    "end_date": iso(d.ends_on),
                    "min_rental_duration": money(d.min_rental_hours),
                }
                for d in e.discounts
            ],
        },
        "operator": {
            "included": e.operator_included,
            "fee": money(e.operator_fee),
            "fee_basis": e.operator_fee_basis,
        },
        "delivery": {
            "available": e.delivery_available,
            "fee": money(e.delivery_fee),
            "max_distance_km": money(e.max_delivery_distance_km),
        },
        "is_available": e.is_available,
        "status": e.status,
        "ratings": {"average": float(e.rating_average or 0), "count": e.rating_count},
    }
    if with_reviews:
        data["reviews"] = [
            {
                "id": r.id,
                "reviewer_id": r.reviewer_id,
                "rating": r.rating,
                "comment": r.comment,
                "date": iso(r.created_at),
            }
            for r in e.reviews.order_by(Review.id.asc()).all()
        ]
    return data


@api_equipment_bp.get("")
def list_equipment():
    page = request.args.get("page", default=1, type=int)
    per_page = request.args.get("per_page", default=12, type=int)
    paginated = EquipmentService.list_equipment(
        page=max(page, 1),
        per_page=min(max(per_page, 1), 50),
        category=request.args.get("category"),
        min_price=request.args.get("min_price"),
        max_price=request.args.get("max_price"),
        operator_included=request.args.get("operator_included"),
        only_available=request.args.get("available") == "true",
    )
    return jsonify(
        {
            "items": [serialize_equipment(e) for e in paginated.items],
            "meta": {
                "page": paginated.page,
                "pages": paginated.pages,
                "total": paginated.total,
                "has_next": paginated.has_next,
                "has_prev": paginated.has_prev,
            },
        }
    )


@api_equipment_bp.get("/categories")
@cache.cached(timeout=3600)
def list_categories():
    return jsonify({"items": list(EquipmentService.CATEGORIES)})


@api_equipment_bp.get("/<int:equipment_id>")
def get_equipment(equipment_id):
    return jsonify(serialize_equipment(EquipmentService.get_equipment(equipment_id), with_reviews=True))


@api_equipment_bp.get("/<int:equipment_id>/availability")
def check_availability(equipment_id):
    start = parse_datetime(request.args.get("start"), "Start")
    end = parse_datetime(request.args.get("end"), "End")
    return jsonify(
        {
            "equipment_id": equipment_id,
            "start": iso(start),
            "end": iso(end),
            "is_available": AvailabilityService.is_available(equipment_id, start, end),
        }
    )


@api_equipment_bp.post("")
@login_required
@role_required("owner")
def create_equipment():
    equipment = EquipmentService.create_equipment(current_actor(), json_payload())
    return jsonify(serialize_equipment(equipment)), 201


@api_equipment_bp.put("/<int:equipment_id>")
@login_required
def update_equipment(equipment_id):
    equipment = EquipmentService.update_equipment(current_actor(), equipment_id, json_payload())
    return jsonify(serialize_equipment(equipment))


@api_equipment_bp.put("/<int:equipment_id>/availability")
@login_required
def update_availability(equipment_id):
    payload = json_payload()
    equipment = EquipmentService.set_availability(
        current_actor(),
        equipment_id,
        is_available=payload.get("is_available"),
        status=payload.get("status"),
    )
    return jsonify({"id": equipment.id, "is_available": equipment.is_available, "status": equipment.status})


@api_equipment_bp.delete("/<int:equipment_id>")
@login_required
def retire_equipment(equipment_id):
    equipment = EquipmentService.retire_equipment(current_actor(), equipment_id)
    return jsonify({"id": equipment.id, "is_available": equipment.is_available, "status": equipment.status})


@api_equipment_bp.post("/<int:equipment_id>/reviews")
@login_required
@role_required("farmer")
def add_review(equipment_id):
    payload = json_payload()
    review = ReviewService.attach_review(
        equipment_id=equipment_id,
        reviewer_id=current_actor().id,
        rating=payload.get("rating"),
        comment=payload.get("comment"),
    )
    equipment = EquipmentService.get_equipment(equipment_id)
    return (
        jsonify(
            {
                "id": review.id,
                "rating": review.rating,
                "ratings": {"average": float(equipment.rating_average or 0), "count": equipment.rating_count},
            }
        ),
        201,
    )
