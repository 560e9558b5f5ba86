from agrirent.errors import EquipmentUnavailable, NotFound
from agrirent.extensions import db
from agrirent.models import Booking, Equipment, EquipmentScheduleEntry
from agrirent.models.base import utcnow
from agrirent.models.enums import NON_TERMINAL_STATUSES
from agrirent.services.pricing import validate_interval


class AvailabilityService:
    """Committed intervals per equipment item.

    An interval blocks new reservations while its schedule entry is booked and
    the owning booking is in a non-terminal status.
    """

    @staticmethod
    def _get_equipment(equipment_id):
        equipment = db.session.get(Equipment, equipment_id)
        if not equipment:
            raise NotFound("Equipment not found.")
        return equipment

    @staticmethod
    def overlapping_entries(equipment_id, start, end):
        return (
            EquipmentScheduleEntry.query.join(Booking, Booking.id == EquipmentScheduleEntry.booking_id)
            .filter(EquipmentScheduleEntry.equipment_id == equipment_id)
            .filter(EquipmentScheduleEntry.is_booked.is_(True))
            .filter(Booking.status.in_([status.value for status in NON_TERMINAL_STATUSES]))
            .filter(EquipmentScheduleEntry.start_time < end, EquipmentScheduleEntry.end_time > start)
        )

    @staticmethod
    def _is_free(equipment, start, end):
        if not equipment.is_available:
            return False
        return AvailabilityService.overlapping_entries(equipment.id, start, end).first() is None

    @staticmethod
    def is_flagged_available(equipment_id):
        return bool(AvailabilityService._get_equipment(equipment_id).is_available)

    @staticmethod
    def is_available(equipment_id, start, end):
        start, end = validate_interval(start, end)
        equipment = AvailabilityService._get_equipment(equipment_id)
        return AvailabilityService._is_free(equipment, start, end)

    @staticmethod
    def reserve(equipment, booking, start, end):
        """Commit ``[start, end)`` to ``booking``; caller holds the equipment lock."""
        start, end = validate_interval(start, end)
        if not AvailabilityService._is_free(equipment, start, end):
            raise EquipmentUnavailable("Equipment is not available for the selected time slot.")
        entry = EquipmentScheduleEntry(
            equipment_id=equipment.id,
            booking=booking,
            start_time=start,
            end_time=end,
            is_booked=True,
        )
        db.session.add(entry)
        return entry

    @staticmethod
    def release(equipment_id, booking_id):
        entry = EquipmentScheduleEntry.query.filter_by(equipment_id=equipment_id, booking_id=booking_id).first()
        if entry is None or not entry.is_booked:
            return entry
        entry.is_booked = False
        entry.released_at = utcnow()
        return entry

    @staticmethod
    def committed_intervals(equipment_id, start=None, end=None):
        query = (
            EquipmentScheduleEntry.query.join(Booking, Booking.id == EquipmentScheduleEntry.booking_id)
            .filter(EquipmentScheduleEntry.equipment_id == equipment_id)
            .filter(EquipmentScheduleEntry.is_booked.is_(True))
            .filter(Booking.status.in_([status.value for status in NON_TERMINAL_STATUSES]))
        )
        if start is not None and end is not None:
            start, end = validate_interval(start, end)
            query = query.filter(EquipmentScheduleEntry.start_time < end, EquipmentScheduleEntry.end_time > start)
        return query.order_by(EquipmentScheduleEntry.start_time.asc()).all()
