"""Cart pricing: volume discounts, sales tax and shipping.

All amounts are integer cents. Percentages are applied with ``Decimal`` and
rounded half-up to the cent so the totals shown in the cart match the
amounts sent to Stripe.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional


@dataclass(frozen=True)
class VolumeDiscount:
    """A volume discount tier.

    Attributes:
        min_cents: Minimum pre-discount subtotal that unlocks the tier.
        percentage: Discount rate as a Decimal fraction (``0.10`` = 10%).
        label: Human-readable label.
    """

    min_cents: int
    percentage: Decimal
    label: str

    @property
    def percent_off(self) -> int:
        return int(self.percentage * 100)


@dataclass(frozen=True)
class CartLine:
    sku: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    volume_discount: Optional[VolumeDiscount]
    discount_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int


@dataclass(frozen=True)
class NextDiscountTier:
    tier: VolumeDiscount
    amount_needed_cents: int
    additional_savings_cents: int


def _cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PricingCalculator:
    """Compute cart totals and discount-tier hints."""

    VOLUME_DISCOUNTS: tuple[VolumeDiscount, ...] = (
        VolumeDiscount(100_000, Decimal("0.10"), "10% off orders $1,000+"),
        VolumeDiscount(250_000, Decimal("0.15"), "15% off orders $2,500+"),
        VolumeDiscount(500_000, Decimal("0.20"), "20% off orders $5,000+"),
    )
    TAX_RATE = Decimal("0.08")
    FREE_SHIPPING_MIN_CENTS = 50_000
    SHIPPING_CENTS = 2_500

    def calculate_volume_discount(self, subtotal_cents: int) -> Optional[VolumeDiscount]:
        """Return the highest tier unlocked by ``subtotal_cents``, if any."""
        for tier in reversed(self.VOLUME_DISCOUNTS):
            if subtotal_cents >= tier.min_cents:
                return tier
        return None

    def calculate_cart_total(self, lines: Iterable[CartLine]) -> CartTotals:
        """Compute subtotal, discount, tax, shipping and total.

        Tax applies to the discounted amount. Free shipping is decided on the
        pre-discount subtotal.
        """
        subtotal = sum(line.line_total_cents for line in lines)
        tier = self.calculate_volume_discount(subtotal)
        discount = _cents(Decimal(subtotal) * tier.percentage) if tier else 0
        taxable = subtotal - discount
        tax = _cents(Decimal(taxable) * self.TAX_RATE)
        shipping = 0 if self.qualifies_for_free_shipping(subtotal) else self.SHIPPING_CENTS
        return CartTotals(
            subtotal_cents=subtotal,
            volume_discount=tier,
            discount_cents=discount,
            tax_cents=tax,
            shipping_cents=shipping,
            total_cents=taxable + tax + shipping,
        )

    def next_discount_tier(self, subtotal_cents: int) -> Optional[NextDiscountTier]:
        """Return the next tier above the current one and what it would take."""
        current = self.calculate_volume_discount(subtotal_cents)
        current_pct = current.percentage if current else Decimal("0")
        for tier in self.VOLUME_DISCOUNTS:
            if tier.percentage > current_pct:
                savings = Decimal(tier.min_cents) * tier.percentage - Decimal(subtotal_cents) * current_pct
                return NextDiscountTier(
                    tier=tier,
                    amount_needed_cents=tier.min_cents - subtotal_cents,
                    additional_savings_cents=_cents(savings),
                )
        return None

    def qualifies_for_free_shipping(self, subtotal_cents: int) -> bool:
        return subtotal_cents >= self.FREE_SHIPPING_MIN_CENTS

    def amount_for_free_shipping(self, subtotal_cents: int) -> int:
        if self.qualifies_for_free_shipping(subtotal_cents):
            return 0
        return self.FREE_SHIPPING_MIN_CENTS - subtotal_cents

    def savings_percentage(self, original_cents: int, discounted_cents: int) -> int:
        if original_cents == 0:
            return 0
        pct = Decimal(original_cents - discounted_cents) / Decimal(original_cents) * 100
        return _cents(pct)

    def all_discount_tiers(self) -> list[VolumeDiscount]:
        return list(self.VOLUME_DISCOUNTS)

    @staticmethod
    def format_currency(cents: int) -> str:
        sign = "-" if cents < 0 else ""
        return f"{sign}${abs(cents) / 100:,.2f}"
