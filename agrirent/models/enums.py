"""Closed value sets shared by models, services and routes."""

from enum import Enum


class Role(str, Enum):
    FARMER = "farmer"
    OWNER = "owner"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value):
        raw = (value or "").strip().lower()
        raw = {"renter": "farmer", "provider": "owner"}.get(raw, raw)
        return cls(raw)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    # Finer-grained phases of in_progress.
    ON_THE_WAY = "on_the_way"
    WORKING = "working"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @property
    def is_terminal(self):
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED})
NON_TERMINAL_STATUSES = frozenset(set(BookingStatus) - TERMINAL_STATUSES)
IN_PROGRESS_PHASES = frozenset({BookingStatus.IN_PROGRESS, BookingStatus.ON_THE_WAY, BookingStatus.WORKING})

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.REJECTED}),
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.IN_PROGRESS,
            BookingStatus.ON_THE_WAY,
            BookingStatus.WORKING,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.ON_THE_WAY: frozenset({BookingStatus.WORKING, BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.WORKING: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REJECTED: frozenset(),
}


class BookingType(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    OTHER = "other"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    REJECTED = "rejected"
    NOT_APPLICABLE = "not_applicable"


class EquipmentCategory(str, Enum):
    TRACTOR = "tractor"
    HARVESTER = "harvester"
    SEEDER = "seeder"
    SPRAYER = "sprayer"
    PLOW = "plow"
    IRRIGATION = "irrigation"
    DRONE = "drone"
    OTHER = "other"


class EquipmentStatus(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class OperatorFeeBasis(str, Enum):
    FLAT = "flat"
    PER_UNIT = "per_unit"


class DiscountKind(str, Enum):
    SEASONAL = "seasonal"
    DURATION = "duration"
    REPEAT_CUSTOMER = "repeat_customer"
