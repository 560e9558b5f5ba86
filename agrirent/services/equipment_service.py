from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.orm import joinedload

from agrirent.errors import AppError, NotFound
from agrirent.extensions import db
from agrirent.models import Equipment, EquipmentDiscount
from agrirent.models.enums import DiscountKind, EquipmentCategory, EquipmentStatus, OperatorFeeBasis
from agrirent.services.access_policy import AccessPolicy
from agrirent.services.transaction import entity_locks, unit_of_work

ADDRESS_FIELDS = ("street", "city", "state", "postal_code", "country")
TEXT_FIELDS = ("name", "description", "sub_category", "manufacturer", "model")
MONEY_FIELDS = ("rate_per_hour", "rate_per_day", "rate_per_week", "deposit", "operator_fee", "delivery_fee")


class EquipmentService:
    CATEGORIES = tuple(category.value for category in EquipmentCategory)

    @staticmethod
    def _parse_decimal(value, label, allow_none=True, minimum=Decimal("0")):
        if value is None or value == "":
            if allow_none:
                return None
            raise AppError(f"{label} is required.", 400)
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise AppError(f"Invalid {label} value.", 400) from exc
        if number < minimum:
            raise AppError(f"{label} must not be below {minimum}.", 400)
        return number

    @staticmethod
    def _parse_choice(value, enum_cls, label):
        try:
            return enum_cls(str(value).strip().lower()).value
        except ValueError as exc:
            raise AppError(f"Invalid {label}.", 400) from exc

    @staticmethod
    def _parse_object(value, label):
        value = value or {}
        if not isinstance(value, dict):
            raise AppError(f"{label} must be an object.", 400)
        return value

    @staticmethod
    def _parse_bool(value):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @staticmethod
    def _parse_date(value, label):
        if value in (None, ""):
            return None
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError as exc:
            raise AppError(f"Invalid {label}.", 400) from exc

    @staticmethod
    def _parse_discounts(rows):
        discounts = []
        for row in rows or []:
            if not isinstance(row, dict):
                raise AppError("Invalid discount rule.", 400)
            percentage = EquipmentService._parse_decimal(row.get("percentage"), "Discount percentage", allow_none=False)
            if percentage <= 0 or percentage > 100:
                raise AppError("Discount percentage must be between 0 and 100.", 400)
            starts_on = EquipmentService._parse_date(row.get("start_date"), "discount start date")
            ends_on = EquipmentService._parse_date(row.get("end_date"), "discount end date")
            if starts_on and ends_on and ends_on < starts_on:
                raise AppError("Discount end date must not precede its start date.", 400)
            discounts.append(
                EquipmentDiscount(
                    kind=EquipmentService._parse_choice(row.get("type", "duration"), DiscountKind, "discount type"),
                    percentage=percentage,
                    starts_on=starts_on,
                    ends_on=ends_on,
                    min_rental_hours=EquipmentService._parse_decimal(
                        row.get("min_rental_duration"), "Discount minimum duration"
                    ),
                )
            )
        return discounts

    @staticmethod
    def _apply_payload(equipment, payload):
        for field in TEXT_FIELDS:
            if field in payload:
                setattr(equipment, field, (str(payload.get(field) or "")).strip() or None)
        if "category" in payload:
            equipment.category = EquipmentService._parse_choice(payload["category"], EquipmentCategory, "category")
        if "year" in payload:
            try:
                equipment.year = int(payload["year"]) if payload["year"] not in (None, "") else None
            except (TypeError, ValueError) as exc:
                raise AppError("Invalid year value.", 400) from exc
        if "specifications" in payload:
            if not isinstance(payload["specifications"] or {}, dict):
                raise AppError("Specifications must be an object.", 400)
            equipment.specifications = payload["specifications"] or {}
        if "features" in payload:
            equipment.features = [str(item) for item in (payload["features"] or [])]

        pricing = EquipmentService._parse_object(payload.get("pricing"), "Pricing")
        for field in MONEY_FIELDS:
            source = pricing if field in pricing else payload
            if field in source:
                setattr(equipment, field, EquipmentService._parse_decimal(source[field], field.replace("_", " ")))
        if "minimum_rental_hours" in pricing or "minimum_rental_hours" in payload:
            raw = pricing.get("minimum_rental_hours", payload.get("minimum_rental_hours"))
            equipment.minimum_rental_hours = EquipmentService._parse_decimal(raw, "minimum rental hours") or Decimal(
                "0"
            )
        if "discounts" in pricing:
            equipment.discounts = EquipmentService._parse_discounts(pricing["discounts"])

        if "operator_included" in payload:
            equipment.operator_included = EquipmentService._parse_bool(payload["operator_included"])
        if "operator_fee_basis" in payload:
            equipment.operator_fee_basis = EquipmentService._parse_choice(
                payload["operator_fee_basis"], OperatorFeeBasis, "operator fee basis"
            )
        if "delivery_available" in payload:
            equipment.delivery_available = EquipmentService._parse_bool(payload["delivery_available"])
        if "max_delivery_distance_km" in payload:
            equipment.max_delivery_distance_km = EquipmentService._parse_decimal(
                payload["max_delivery_distance_km"], "max delivery distance"
            )

        location = EquipmentService._parse_object(payload.get("location"), "Location")
        coordinates = location.get("coordinates")
        if coordinates is not None:
            if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
                raise AppError("Coordinates must be [longitude, latitude].", 400)
            longitude = EquipmentService._parse_decimal(coordinates[0], "longitude", minimum=Decimal("-180"))
            latitude = EquipmentService._parse_decimal(coordinates[1], "latitude", minimum=Decimal("-90"))
            if longitude > 180 or latitude > 90:
                raise AppError("Coordinates out of range.", 400)
            equipment.longitude, equipment.latitude = longitude, latitude
        address = EquipmentService._parse_object(location.get("address"), "Address")
        for field in ADDRESS_FIELDS:
            if field in address:
                setattr(equipment, field, (str(address.get(field) or "")).strip() or None)

        if not equipment.name or not equipment.manufacturer or not equipment.model:
            raise AppError("Name, manufacturer and model are required.", 400)
        if equipment.rate_per_hour is None or Decimal(str(equipment.rate_per_hour)) <= 0:
            raise AppError("Rate per hour must be a positive number.", 400)

    @staticmethod
    def create_equipment(actor, payload):
        AccessPolicy.authorize_create_equipment(actor)
        equipment = Equipment(
            owner_id=actor.id,
            category=EquipmentCategory.TRACTOR.value,
            specifications={},
            features=[],
            minimum_rental_hours=Decimal("1"),
            operator_fee_basis=OperatorFeeBasis.FLAT.value,
            status=EquipmentStatus.ACTIVE.value,
            is_available=True,
        )
        with unit_of_work():
            EquipmentService._apply_payload(equipment, payload)
            db.session.add(equipment)
            db.session.commit()
        current_app.logger.info("Equipment %s listed by user %s", equipment.id, actor.id)
        return equipment

    @staticmethod
    def get_equipment(equipment_id):
        equipment = db.session.get(Equipment, equipment_id)
        if not equipment:
            raise NotFound("Equipment not found.")
        return equipment

    @staticmethod
    def update_equipment(actor, equipment_id, payload):
        with entity_locks.hold("equipment", equipment_id), unit_of_work():
            equipment = EquipmentService.get_equipment(equipment_id)
            AccessPolicy.authorize_manage_equipment(actor, equipment)
            EquipmentService._apply_payload(equipment, payload)
            db.session.commit()
        return equipment

    @staticmethod
    def set_availability(actor, equipment_id, is_available=None, status=None):
        with entity_locks.hold("equipment", equipment_id), unit_of_work():
            equipment = EquipmentService.get_equipment(equipment_id)
            AccessPolicy.authorize_manage_equipment(actor, equipment)
            if status is not None:
                equipment.status = EquipmentService._parse_choice(status, EquipmentStatus, "equipment status")
            if is_available is not None:
                equipment.is_available = EquipmentService._parse_bool(is_available)
            if equipment.status != EquipmentStatus.ACTIVE.value:
                equipment.is_available = False
            db.session.commit()
        current_app.logger.info(
            "Equipment %s availability set to %s (%s)", equipment_id, equipment.is_available, equipment.status
        )
        return equipment

    @staticmethod
    def retire_equipment(actor, equipment_id):
        return EquipmentService.set_availability(
            actor, equipment_id, is_available=False, status=EquipmentStatus.INACTIVE.value
        )

    @staticmethod
    def list_equipment(
        page=1,
        per_page=12,
        category=None,
        min_price=None,
        max_price=None,
        operator_included=None,
        only_available=False,
        owner_id=None,
    ):
        query = (
            Equipment.query.options(joinedload(Equipment.owner))
            .filter(Equipment.status == EquipmentStatus.ACTIVE.value)
            .order_by(Equipment.rate_per_hour.asc(), Equipment.id.asc())
        )
        if category:
            query = query.filter(
                Equipment.category == EquipmentService._parse_choice(category, EquipmentCategory, "category")
            )
        if min_price not in (None, ""):
            query = query.filter(Equipment.rate_per_hour >= EquipmentService._parse_decimal(min_price, "min price"))
        if max_price not in (None, ""):
            query = query.filter(Equipment.rate_per_hour <= EquipmentService._parse_decimal(max_price, "max price"))
        if operator_included is not None:
            query = query.filter(Equipment.operator_included.is_(EquipmentService._parse_bool(operator_included)))
        if only_available:
            query = query.filter(Equipment.is_available.is_(True))
        if owner_id is not None:
            query = query.filter(Equipment.owner_id == owner_id)
        return query.paginate(page=page, per_page=per_page, error_out=False)
