"""Who may see or change a booking or an equipment listing.

Predicates take the acting identity explicitly and never read request state.
Every denial raises the same ``Forbidden`` so callers cannot tell which rule
failed.
"""

from dataclasses import dataclass
from enum import Enum

from agrirent.errors import Forbidden
from agrirent.models.enums import BookingStatus, Role


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @classmethod
    def of(cls, user):
        try:
            role = Role.parse(user.role)
        except ValueError as exc:
            raise Forbidden() from exc
        return cls(id=user.id, role=role)

    @property
    def is_admin(self):
        return self.role is Role.ADMIN


class BookingAction(str, Enum):
    VIEW = "view"
    TRANSITION = "transition"
    RATE = "rate"
    TRACK = "track"
    PAY = "pay"
    REFUND = "refund"


PROVIDER_TRANSITIONS = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.ON_THE_WAY,
        BookingStatus.WORKING,
        BookingStatus.COMPLETED,
    }
)


class AccessPolicy:
    @staticmethod
    def _is_renter(actor, booking):
        return actor.id == booking.renter_id

    @staticmethod
    def _is_provider(actor, booking):
        return actor.id == booking.owner_id

    @classmethod
    def can_view(cls, actor, booking):
        return actor.is_admin or cls._is_renter(actor, booking) or cls._is_provider(actor, booking)

    @classmethod
    def can_transition(cls, actor, booking, target):
        if target == BookingStatus.CANCELLED:
            return actor.is_admin or cls._is_renter(actor, booking)
        if target in PROVIDER_TRANSITIONS:
            return actor.is_admin or cls._is_provider(actor, booking)
        return False

    @classmethod
    def can_rate(cls, actor, booking):
        return cls._is_renter(actor, booking) and booking.status == BookingStatus.COMPLETED.value

    @classmethod
    def can_track(cls, actor, booking):
        return actor.is_admin or cls._is_provider(actor, booking)

    @classmethod
    def is_allowed(cls, actor, booking, action, target=None):
        action = BookingAction(action)
        if action is BookingAction.VIEW:
            return cls.can_view(actor, booking)
        if action is BookingAction.TRANSITION:
            return cls.can_transition(actor, booking, target)
        if action is BookingAction.RATE:
            return cls.can_rate(actor, booking)
        if action in (BookingAction.TRACK, BookingAction.PAY):
            return cls.can_track(actor, booking)
        if action is BookingAction.REFUND:
            return actor.is_admin
        return False

    @classmethod
    def authorize(cls, actor, booking, action, target=None):
        if not cls.is_allowed(actor, booking, action, target):
            raise Forbidden()

    @staticmethod
    def authorize_create_booking(actor):
        if actor.role is not Role.FARMER:
            raise Forbidden()

    @staticmethod
    def authorize_create_equipment(actor):
        if actor.role is not Role.OWNER:
            raise Forbidden()

    @staticmethod
    def authorize_manage_equipment(actor, equipment):
        if not (actor.is_admin or actor.id == equipment.owner_id):
            raise Forbidden()

    @staticmethod
    def authorize_review(actor):
        if actor.role is not Role.FARMER:
            raise Forbidden()
