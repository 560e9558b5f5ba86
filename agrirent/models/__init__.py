from agrirent.models.booking import Booking, BookingStatusEvent
from agrirent.models.equipment import Equipment, EquipmentDiscount, EquipmentScheduleEntry
from agrirent.models.notification import Notification
from agrirent.models.review import Review
from agrirent.models.user import User

__all__ = [
    "User",
    "Equipment",
    "EquipmentDiscount",
    "EquipmentScheduleEntry",
    "Booking",
    "BookingStatusEvent",
    "Review",
    "Notification",
]
