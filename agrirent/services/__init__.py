from agrirent.services.access_policy import AccessPolicy, Actor, BookingAction
from agrirent.services.availability_service import AvailabilityService
from agrirent.services.booking_service import BookingService
from agrirent.services.equipment_service import EquipmentService
from agrirent.services.notification_service import NotificationService
from agrirent.services.pricing import PriceBreakdown, PricingCalculator, RateCard
from agrirent.services.review_service import ReviewService

__all__ = [
    "AccessPolicy",
    "Actor",
    "AvailabilityService",
    "BookingAction",
    "BookingService",
    "EquipmentService",
    "NotificationService",
    "PriceBreakdown",
    "PricingCalculator",
    "RateCard",
    "ReviewService",
]
