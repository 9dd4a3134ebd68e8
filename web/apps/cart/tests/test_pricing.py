from decimal import Decimal

import pytest

from apps.cart.catalog import all_products, get_product
from apps.cart.pricing import CartLine, PricingCalculator


@pytest.fixture
def calc():
    return PricingCalculator()


def test_small_cart_pays_tax_and_shipping(calc):
    totals = calc.calculate_cart_total([CartLine("DCB609", 2, 12500)])
    assert totals.volume_discount is None
    assert (totals.subtotal_cents, totals.discount_cents, totals.tax_cents) == (25000, 0, 2000)
    assert totals.shipping_cents == 2500
    assert totals.total_cents == 29500


def test_first_tier_discount_and_free_shipping(calc):
    totals = calc.calculate_cart_total([CartLine("DCB615", 5, 24500)])
    assert totals.volume_discount.percent_off == 10
    assert totals.discount_cents == 12250
    # tax applies after the discount
    assert totals.tax_cents == 8820
    assert totals.shipping_cents == 0
    assert totals.total_cents == 119070


def test_second_tier_boundary(calc):
    totals = calc.calculate_cart_total([CartLine("DCB609", 20, 12500)])
    assert totals.volume_discount.percentage == Decimal("0.15")
    assert totals.discount_cents == 37500
    assert totals.total_cents == 212500 + 17000


@pytest.mark.parametrize(
    "subtotal, pct",
    [(99_999, None), (100_000, 10), (249_999, 10), (250_000, 15), (500_000, 20), (2_000_000, 20)],
)
def test_volume_discount_tiers(calc, subtotal, pct):
    tier = calc.calculate_volume_discount(subtotal)
    assert (tier.percent_off if tier else None) == pct


def test_discount_rounds_half_up(calc):
    totals = calc.calculate_cart_total([CartLine("X", 1, 100_005)])
    assert totals.discount_cents == 10_001


def test_empty_cart_still_quotes_shipping(calc):
    totals = calc.calculate_cart_total([])
    assert (totals.subtotal_cents, totals.tax_cents) == (0, 0)
    assert totals.shipping_cents == 2500
    assert totals.total_cents == 2500


def test_next_discount_tier(calc):
    nxt = calc.next_discount_tier(25_000)
    assert nxt.tier.percent_off == 10
    assert nxt.amount_needed_cents == 75_000
    assert nxt.additional_savings_cents == 10_000

    nxt = calc.next_discount_tier(122_500)
    assert nxt.tier.percent_off == 15
    assert nxt.amount_needed_cents == 127_500
    assert nxt.additional_savings_cents == 25_250

    assert calc.next_discount_tier(600_000) is None


def test_shipping_helpers_and_formatting(calc):
    assert calc.qualifies_for_free_shipping(50_000)
    assert calc.amount_for_free_shipping(25_000) == 25_000
    assert calc.amount_for_free_shipping(80_000) == 0
    assert calc.savings_percentage(3, 2) == 33
    assert calc.savings_percentage(0, 0) == 0
    assert calc.format_currency(119_070) == "$1,190.70"
    assert calc.format_currency(-250) == "-$2.50"
    assert len(calc.all_discount_tiers()) == 3


def test_catalog_lookup():
    assert get_product("dcb606").price_cents == 9500
    assert [p.sku for p in all_products()] == ["DCB606", "DCB609", "DCB615"]
    with pytest.raises(KeyError):
        get_product("DCB999")
