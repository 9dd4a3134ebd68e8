"""Domain models, ports and the order placement service.

This module holds the DTOs shared by the orders app, the protocol
definitions (ports) for inventory and payments, and ``OrderService``, which
places an order by reserving stock and charging the customer. The service
performs no persistence and no I/O of its own; views and the lifecycle
workflow decide what to store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Tuple


# ---- Enums ----
class OrderStatus(str, Enum):
    """Placement and payment status of an order.

    Orthogonal to the lifecycle stage: an order in the PAYMENT_PROCESSING
    stage is CREATED until the charge succeeds, then CONFIRMED.
    """

    CREATED = "CREATED"
    STOCK_RESERVED = "STOCK_RESERVED"
    STOCK_FAILED = "STOCK_FAILED"
    PAID = "PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderType(str, Enum):
    STANDARD = "standard"
    BULK = "bulk"
    RUSH = "rush"
    SUBSCRIPTION = "subscription"
    SAMPLE = "sample"
    WARRANTY = "warranty"
    RETURN_REPLACEMENT = "return_replacement"


class OrderPriority(str, Enum):
    LOW = "low"
    STANDARD = "standard"
    HIGH = "high"
    URGENT = "urgent"
    EXPEDITED = "expedited"
    EMERGENCY = "emergency"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class OrderItem:
    """A single line item in an order.

    Attributes:
        sku: Product SKU (for example ``DCB609``).
        quantity: Number of units requested.
    """

    sku: str
    quantity: int


@dataclass
class Order:
    """Container for order data moving through placement.

    Attributes:
        id: Persistent identifier, or None if not yet saved.
        items: Line items.
        status: Current OrderStatus.
        total_cents: Amount to charge, in integer cents.
        currency: ISO currency code.
        transaction_id: Payment reference returned by the payments port.
    """

    id: Optional[str]
    items: List[OrderItem]
    status: OrderStatus = OrderStatus.CREATED
    total_cents: int = 0
    currency: str = "USD"
    transaction_id: Optional[str] = None
    order_type: OrderType = OrderType.STANDARD
    priority: OrderPriority = OrderPriority.STANDARD
    metadata: dict = field(default_factory=dict)


# ---- Ports ----
class InventoryPort(Protocol):
    """Stock operations the domain needs from the inventory service."""

    def reserve(self, items: List[OrderItem]) -> bool:
        """Reserve all items or none; False on insufficient stock."""
        raise NotImplementedError()

    def release(self, items: List[OrderItem]) -> None:
        """Return previously reserved items to stock."""
        raise NotImplementedError()

    def stock(self, sku: str) -> int:
        """Return the available quantity for ``sku``."""
        raise NotImplementedError()


class PaymentsPort(Protocol):
    """Payment operations used by the domain."""

    def charge(self, amount_cents: int, currency: str) -> Tuple[bool, Optional[str]]:
        """Charge the customer.

        Returns:
            ``(paid, transaction_id)``; ``(False, None)`` on a decline.
        """
        raise NotImplementedError()

    def refund(self, transaction_id: str, amount_cents: Optional[int] = None) -> bool:
        """Refund a previous charge, fully when ``amount_cents`` is None."""
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Place orders by reserving stock and charging payment."""

    def __init__(self, inventory: InventoryPort, payments: PaymentsPort):
        self.inventory = inventory
        self.payments = payments

    def place_order(self, order: Order) -> Order:
        """Validate, reserve stock, charge payment and confirm.

        ``order.status`` is updated at each step so callers can observe
        where a failure happened. When the charge is declined after stock was
        reserved, the reservation is released before the error is raised.

        Args:
            order: Order to place.

        Returns:
            The same order, CONFIRMED and carrying a transaction id.

        Raises:
            ValueError: ``EMPTY_ORDER``, ``INSUFFICIENT_STOCK`` or
                ``PAYMENT_FAILED``.
        """
        if not order.items:
            raise ValueError("EMPTY_ORDER")

        # 1) Reserve stock
        if not self.inventory.reserve(order.items):
            order.status = OrderStatus.STOCK_FAILED
            raise ValueError("INSUFFICIENT_STOCK")
        order.status = OrderStatus.STOCK_RESERVED

        # 2) Charge payment, releasing the reservation on any failure
        try:
            paid, tx_id = self.payments.charge(order.total_cents, order.currency)
        except Exception:
            self.inventory.release(order.items)
            order.status = OrderStatus.CREATED
            raise
        if not paid:
            self.inventory.release(order.items)
            order.status = OrderStatus.PAYMENT_FAILED
            raise ValueError("PAYMENT_FAILED")
        order.transaction_id = tx_id
        order.status = OrderStatus.PAID

        # 3) Confirm
        order.status = OrderStatus.CONFIRMED
        return order
