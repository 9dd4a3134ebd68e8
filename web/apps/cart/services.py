"""Cart operations on top of the ORM, the catalog and the inventory port.

``CartService`` raises ``ValueError`` with short codes, like
``OrderService`` does; the cart views translate them into HTTP responses.
"""

import logging
from typing import Optional

from django.db import transaction

from apps.orders.domain import InventoryPort

from .catalog import get_product
from .models import Cart, CartItem
from .pricing import CartLine, PricingCalculator

logger = logging.getLogger("cart")

MAX_LINE_QUANTITY = 1000
LOW_STOCK_THRESHOLD = 10


class CartService:
    def __init__(self, inventory: InventoryPort, pricing: Optional[PricingCalculator] = None):
        self.inventory = inventory
        self.pricing = pricing or PricingCalculator()

    def create(self, owner_id: str = "") -> Cart:
        cart = Cart.objects.create(owner_id=owner_id or "")
        logger.info("cart created", extra={"cart_id": str(cart.id)})
        return cart

    def get(self, cart_id) -> Cart:
        try:
            return Cart.objects.get(id=cart_id)
        except Cart.DoesNotExist:
            raise ValueError("CART_NOT_FOUND")

    @transaction.atomic
    def add_item(self, cart: Cart, sku: str, quantity: int) -> CartItem:
        """Add ``quantity`` units of ``sku``, merging with an existing line.

        Raises:
            ValueError: ``CART_CLOSED``, ``UNKNOWN_SKU``, ``INVALID_QUANTITY``
                or ``INSUFFICIENT_STOCK``.
        """
        self._ensure_active(cart)
        try:
            product = get_product(sku)
        except KeyError:
            raise ValueError("UNKNOWN_SKU")

        line = CartItem.objects.select_for_update().filter(cart=cart, sku=product.sku).first()
        new_qty = quantity + (line.quantity if line else 0)
        if quantity < 1 or new_qty > MAX_LINE_QUANTITY:
            raise ValueError("INVALID_QUANTITY")
        self._ensure_stock(product.sku, new_qty)

        if line:
            line.quantity = new_qty
            line.unit_price_cents = product.price_cents
            line.save(update_fields=["quantity", "unit_price_cents"])
        else:
            line = CartItem.objects.create(
                cart=cart, sku=product.sku, quantity=new_qty, unit_price_cents=product.price_cents
            )
        cart.save(update_fields=["updated_at"])
        return line

    @transaction.atomic
    def update_item(self, cart: Cart, sku: str, quantity: int) -> Optional[CartItem]:
        """Set the quantity of a line; zero removes it."""
        self._ensure_active(cart)
        line = self._line(cart, sku)
        if quantity == 0:
            line.delete()
            return None
        if quantity < 0 or quantity > MAX_LINE_QUANTITY:
            raise ValueError("INVALID_QUANTITY")
        self._ensure_stock(line.sku, quantity)
        line.quantity = quantity
        line.save(update_fields=["quantity"])
        return line

    def remove_item(self, cart: Cart, sku: str) -> None:
        self._ensure_active(cart)
        self._line(cart, sku).delete()

    def clear(self, cart: Cart) -> None:
        cart.items.all().delete()

    def lines(self, cart: Cart) -> list[CartLine]:
        return [
            CartLine(sku=i.sku, quantity=i.quantity, unit_price_cents=i.unit_price_cents)
            for i in cart.items.all()
        ]

    def summary(self, cart: Cart) -> dict:
        """Items, totals and hints shown for a cart."""
        items = list(cart.items.all())
        totals = self.pricing.calculate_cart_total(self.lines(cart))
        next_tier = self.pricing.next_discount_tier(totals.subtotal_cents)

        warnings = []
        for item in items:
            available = self.inventory.stock(item.sku)
            if available < LOW_STOCK_THRESHOLD:
                warnings.append({"sku": item.sku, "code": "low_stock", "available": available})

        return {
            "id": str(cart.id),
            "status": cart.status,
            "items": [
                {
                    "sku": i.sku,
                    "name": get_product(i.sku).name,
                    "quantity": i.quantity,
                    "unit_price_cents": i.unit_price_cents,
                    "line_total_cents": i.unit_price_cents * i.quantity,
                }
                for i in items
            ],
            "item_count": sum(i.quantity for i in items),
            "subtotal_cents": totals.subtotal_cents,
            "discount_cents": totals.discount_cents,
            "discount_label": totals.volume_discount.label if totals.volume_discount else None,
            "tax_cents": totals.tax_cents,
            "shipping_cents": totals.shipping_cents,
            "total_cents": totals.total_cents,
            "next_discount": (
                {
                    "label": next_tier.tier.label,
                    "amount_needed_cents": next_tier.amount_needed_cents,
                    "additional_savings_cents": next_tier.additional_savings_cents,
                }
                if next_tier
                else None
            ),
            "amount_for_free_shipping_cents": self.pricing.amount_for_free_shipping(totals.subtotal_cents),
            "warnings": warnings,
        }

    # ---- helpers ----
    def _line(self, cart: Cart, sku: str) -> CartItem:
        try:
            return cart.items.get(sku=sku.upper())
        except CartItem.DoesNotExist:
            raise ValueError("ITEM_NOT_FOUND")

    def _ensure_active(self, cart: Cart) -> None:
        if cart.status != Cart.Status.ACTIVE:
            raise ValueError("CART_CLOSED")

    def _ensure_stock(self, sku: str, quantity: int) -> None:
        available = self.inventory.stock(sku)
        if available < quantity:
            logger.info("cart stock check failed", extra={"sku": sku, "requested": quantity, "available": available})
            raise ValueError("INSUFFICIENT_STOCK")
