"""Price quotes for equipment rentals.

Everything here is pure: the same rate card, interval and flags always give
the same breakdown, and nothing touches the database or the clock.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Tuple

from agrirent.errors import InvalidInterval
from agrirent.models.enums import BookingType, DiscountKind, OperatorFeeBasis

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HOURS_PER_DAY_RATE = Decimal("8")

_MICROS_PER_HOUR = 3_600_000_000
_MICROS_PER_DAY = 24 * _MICROS_PER_HOUR


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_interval(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Return the interval in UTC, rejecting empty or inverted ranges."""
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        raise InvalidInterval("Start and end must be timestamps.")
    start, end = as_utc(start), as_utc(end)
    if end <= start:
        raise InvalidInterval("End time must be after start time.")
    return start, end


@dataclass(frozen=True)
class DiscountRule:
    kind: str
    percentage: Decimal
    starts_on: Optional[date] = None
    ends_on: Optional[date] = None
    min_rental_hours: Optional[Decimal] = None

    def applies(self, start: datetime, elapsed_hours: Decimal, repeat_customer: bool) -> bool:
        if self.percentage <= 0:
            return False
        if self.kind == DiscountKind.REPEAT_CUSTOMER.value and not repeat_customer:
            return False
        day = start.date()
        if self.starts_on and day < self.starts_on:
            return False
        if self.ends_on and day > self.ends_on:
            return False
        if self.min_rental_hours is not None and elapsed_hours < self.min_rental_hours:
            return False
        return True


@dataclass(frozen=True)
class RateCard:
    rate_per_hour: Decimal
    rate_per_day: Optional[Decimal] = None
    minimum_rental_hours: Decimal = Decimal("1")
    deposit: Decimal = ZERO
    operator_available: bool = False
    operator_fee: Decimal = ZERO
    operator_fee_basis: str = OperatorFeeBasis.FLAT.value
    delivery_available: bool = False
    delivery_fee: Decimal = ZERO
    discounts: Tuple[DiscountRule, ...] = field(default_factory=tuple)

    @classmethod
    def from_equipment(cls, equipment):
        return cls(
            rate_per_hour=_money(equipment.rate_per_hour),
            rate_per_day=_money(equipment.rate_per_day) if equipment.rate_per_day else None,
            minimum_rental_hours=Decimal(str(equipment.minimum_rental_hours or 0)),
            deposit=_money(equipment.deposit),
            operator_available=bool(equipment.operator_included),
            operator_fee=_money(equipment.operator_fee),
            operator_fee_basis=equipment.operator_fee_basis or OperatorFeeBasis.FLAT.value,
            delivery_available=bool(equipment.delivery_available),
            delivery_fee=_money(equipment.delivery_fee),
            discounts=tuple(
                DiscountRule(
                    kind=rule.kind,
                    percentage=Decimal(str(rule.percentage)),
                    starts_on=rule.starts_on,
                    ends_on=rule.ends_on,
                    min_rental_hours=(
                        Decimal(str(rule.min_rental_hours)) if rule.min_rental_hours is not None else None
                    ),
                )
                for rule in equipment.discounts
            ),
        )


@dataclass(frozen=True)
class PriceBreakdown:
    booking_type: str
    duration_hours: Decimal
    duration_days: Optional[int]
    unit_rate: Decimal
    base_price: Decimal
    delivery_fee: Decimal
    operator_fee: Decimal
    discount_pct: Decimal
    discount: Decimal
    tax: Decimal
    total_amount: Decimal
    deposit: Decimal

    def as_dict(self):
        return {key: (str(value) if isinstance(value, Decimal) else value) for key, value in asdict(self).items()}


class PricingCalculator:
    @staticmethod
    def elapsed_hours(start: datetime, end: datetime) -> Decimal:
        micros = (end - start) // timedelta(microseconds=1)
        return Decimal(micros) / Decimal(_MICROS_PER_HOUR)

    @staticmethod
    def quote(
        rate_card: RateCard,
        start: datetime,
        end: datetime,
        booking_type,
        operator: bool = False,
        delivery: bool = False,
        repeat_customer: bool = False,
        tax_pct=ZERO,
    ) -> PriceBreakdown:
        start, end = validate_interval(start, end)
        try:
            booking_type = BookingType(booking_type)
        except ValueError as exc:
            raise InvalidInterval("Booking type must be hourly or daily.") from exc

        hours = PricingCalculator.elapsed_hours(start, end)
        if hours < rate_card.minimum_rental_hours:
            raise InvalidInterval(f"Minimum rental duration is {rate_card.minimum_rental_hours} hours.")

        if booking_type is BookingType.HOURLY:
            days = None
            units = hours
            unit_rate = rate_card.rate_per_hour
        else:
            micros = (end - start) // timedelta(microseconds=1)
            days = -(-micros // _MICROS_PER_DAY)
            units = Decimal(days)
            unit_rate = rate_card.rate_per_day or (rate_card.rate_per_hour * HOURS_PER_DAY_RATE)

        base = (units * unit_rate).quantize(CENT)
        delivery_fee = rate_card.delivery_fee if (delivery and rate_card.delivery_available) else ZERO

        operator_fee = ZERO
        if operator and rate_card.operator_available:
            if rate_card.operator_fee_basis == OperatorFeeBasis.PER_UNIT.value:
                operator_fee = (rate_card.operator_fee * units).quantize(CENT)
            else:
                operator_fee = rate_card.operator_fee

        applicable = [rule.percentage for rule in rate_card.discounts if rule.applies(start, hours, repeat_customer)]
        discount_pct = max(applicable, default=ZERO)
        discount = (base * discount_pct / Decimal("100")).quantize(CENT)

        taxable = base + delivery_fee + operator_fee - discount
        tax = (taxable * Decimal(str(tax_pct)) / Decimal("100")).quantize(CENT)
        total = (base + delivery_fee + operator_fee + tax - discount).quantize(CENT)

        return PriceBreakdown(
            booking_type=booking_type.value,
            duration_hours=hours.quantize(CENT),
            duration_days=days,
            unit_rate=unit_rate.quantize(CENT),
            base_price=base,
            delivery_fee=delivery_fee,
            operator_fee=operator_fee,
            discount_pct=Decimal(discount_pct).quantize(CENT),
            discount=discount,
            tax=tax,
            total_amount=total,
            deposit=rate_card.deposit,
        )
