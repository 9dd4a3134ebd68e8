"""In-process stub adapters for the orders domain ports.

These stubs implement ``InventoryPort`` and ``PaymentsPort`` without any
network calls. They back the test-suite and local development when
``USE_HTTP_ADAPTERS`` / ``USE_STRIPE`` are off.
"""

import uuid
from typing import List, Optional, Tuple

from .domain import InventoryPort, OrderItem, PaymentsPort


class InventoryStub(InventoryPort):
    """Stub implementation of ``InventoryPort``.

    Every SKU reports ``STOCK_LEVEL`` units. Reservations are approved when
    each quantity is between 1 and that level; nothing is decremented.
    """

    STOCK_LEVEL = 50

    def reserve(self, items: List[OrderItem]) -> bool:
        return all(1 <= it.quantity <= self.stock(it.sku) for it in items)

    def release(self, items: List[OrderItem]) -> None:
        return None

    def stock(self, sku: str) -> int:
        return self.STOCK_LEVEL


class PaymentsStub(PaymentsPort):
    """Stub implementation of ``PaymentsPort``.

    Approves charges with a positive amount and returns a Stripe-shaped
    payment intent id. Non-positive amounts are declined.
    """

    def charge(self, amount_cents: int, currency: str) -> Tuple[bool, Optional[str]]:
        if amount_cents <= 0:
            return (False, None)
        return (True, f"pi_stub_{uuid.uuid4().hex[:24]}")

    def refund(self, transaction_id: str, amount_cents: Optional[int] = None) -> bool:
        return bool(transaction_id)
