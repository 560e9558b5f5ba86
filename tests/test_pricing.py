from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from agrirent.errors import InvalidInterval
from agrirent.services.pricing import DiscountRule, PricingCalculator, RateCard


def at(hour, day=1, minute=0):
    return datetime(2030, 6, day, hour, minute, tzinfo=timezone.utc)


def card(**overrides):
    values = {"rate_per_hour": Decimal("500.00"), "minimum_rental_hours": Decimal("1")}
    values.update(overrides)
    return RateCard(**values)


def test_hourly_two_hours_at_500():
    quote = PricingCalculator.quote(card(), at(10), at(12), "hourly")
    assert quote.base_price == Decimal("1000.00")
    assert quote.total_amount == Decimal("1000.00")
    assert quote.duration_hours == Decimal("2.00")
    assert quote.duration_days is None


def test_hourly_charges_fractional_hours():
    quote = PricingCalculator.quote(card(), at(10), at(11, minute=30), "hourly")
    assert quote.base_price == Decimal("750.00")


def test_daily_rounds_up_partial_days():
    quote = PricingCalculator.quote(card(rate_per_day=Decimal("3000.00")), at(10), at(11, day=2), "daily")
    assert quote.duration_days == 2
    assert quote.unit_rate == Decimal("3000.00")
    assert quote.base_price == Decimal("6000.00")


def test_daily_without_day_rate_uses_eight_hours():
    quote = PricingCalculator.quote(card(), at(0), at(0, day=2), "daily")
    assert quote.duration_days == 1
    assert quote.unit_rate == Decimal("4000.00")
    assert quote.total_amount == Decimal("4000.00")


@pytest.mark.parametrize(
    "start, end",
    [(at(12), at(10)), (at(10), at(10))],
)
def test_empty_or_inverted_interval_is_rejected(start, end):
    with pytest.raises(InvalidInterval):
        PricingCalculator.quote(card(), start, end, "hourly")


def test_below_minimum_duration_is_rejected():
    with pytest.raises(InvalidInterval):
        PricingCalculator.quote(card(minimum_rental_hours=Decimal("4")), at(10), at(12), "hourly")


def test_unknown_booking_type_is_rejected():
    with pytest.raises(InvalidInterval):
        PricingCalculator.quote(card(), at(10), at(12), "weekly")


def test_naive_timestamps_are_read_as_utc():
    naive = PricingCalculator.quote(card(), datetime(2030, 6, 1, 10), datetime(2030, 6, 1, 12), "hourly")
    aware = PricingCalculator.quote(card(), at(10), at(12), "hourly")
    assert naive == aware


def test_fees_only_when_requested_and_supported():
    supported = card(
        delivery_available=True,
        delivery_fee=Decimal("150.00"),
        operator_available=True,
        operator_fee=Decimal("200.00"),
    )
    quote = PricingCalculator.quote(supported, at(10), at(12), "hourly", operator=True, delivery=True)
    assert quote.delivery_fee == Decimal("150.00")
    assert quote.operator_fee == Decimal("200.00")
    assert quote.total_amount == Decimal("1350.00")

    not_requested = PricingCalculator.quote(supported, at(10), at(12), "hourly")
    assert not_requested.total_amount == Decimal("1000.00")

    unsupported = PricingCalculator.quote(card(delivery_fee=Decimal("150.00")), at(10), at(12), "hourly", delivery=True)
    assert unsupported.delivery_fee == Decimal("0.00")


def test_per_unit_operator_fee_scales_with_duration():
    rate_card = card(operator_available=True, operator_fee=Decimal("100.00"), operator_fee_basis="per_unit")
    quote = PricingCalculator.quote(rate_card, at(10), at(13), "hourly", operator=True)
    assert quote.operator_fee == Decimal("300.00")


def test_highest_applicable_discount_wins():
    rate_card = card(
        discounts=(
            DiscountRule(kind="duration", percentage=Decimal("10"), min_rental_hours=Decimal("2")),
            DiscountRule(kind="duration", percentage=Decimal("15"), min_rental_hours=Decimal("2")),
            DiscountRule(kind="duration", percentage=Decimal("40"), min_rental_hours=Decimal("10")),
        )
    )
    quote = PricingCalculator.quote(rate_card, at(10), at(12), "hourly")
    assert quote.discount_pct == Decimal("15.00")
    assert quote.discount == Decimal("150.00")
    assert quote.total_amount == Decimal("850.00")


def test_seasonal_discount_respects_its_window():
    rule = DiscountRule(
        kind="seasonal",
        percentage=Decimal("20"),
        starts_on=date(2030, 7, 1),
        ends_on=date(2030, 7, 31),
    )
    outside = PricingCalculator.quote(card(discounts=(rule,)), at(10), at(12), "hourly")
    assert outside.discount == Decimal("0.00")

    inside = PricingCalculator.quote(
        card(discounts=(rule,)),
        datetime(2030, 7, 5, 10, tzinfo=timezone.utc),
        datetime(2030, 7, 5, 12, tzinfo=timezone.utc),
        "hourly",
    )
    assert inside.discount == Decimal("200.00")


def test_repeat_customer_discount_needs_history():
    rate_card = card(discounts=(DiscountRule(kind="repeat_customer", percentage=Decimal("5")),))
    first_time = PricingCalculator.quote(rate_card, at(10), at(12), "hourly")
    returning = PricingCalculator.quote(rate_card, at(10), at(12), "hourly", repeat_customer=True)
    assert first_time.discount == Decimal("0.00")
    assert returning.discount == Decimal("50.00")


def test_tax_applies_after_discount():
    rate_card = card(
        delivery_available=True,
        delivery_fee=Decimal("100.00"),
        discounts=(DiscountRule(kind="duration", percentage=Decimal("10")),),
    )
    quote = PricingCalculator.quote(rate_card, at(10), at(12), "hourly", delivery=True, tax_pct="18")
    # (1000 + 100 - 100) * 18%
    assert quote.tax == Decimal("180.00")
    assert quote.total_amount == Decimal("1180.00")


def test_quote_is_deterministic():
    rate_card = card(rate_per_day=Decimal("3500.00"), deposit=Decimal("1000.00"))
    first = PricingCalculator.quote(rate_card, at(6), at(18, day=3), "daily", tax_pct="5")
    second = PricingCalculator.quote(rate_card, at(6), at(18, day=3), "daily", tax_pct="5")
    assert first == second
    assert first.as_dict()["total_amount"] == "11025.00"
    assert first.deposit == Decimal("1000.00")
