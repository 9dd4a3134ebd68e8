"""Unit tests for the OrderService domain orchestration.

These tests validate the behavior of placing orders under different
conditions: happy path, empty orders, insufficient stock, and payment
failures. Stubbed ports are used to deterministically drive outcomes.
"""

import httpx
import pytest

from apps.orders.domain import Order, OrderItem, OrderService, OrderStatus


class StubInventory:
    """Inventory stub recording releases; ``ok`` decides reservations."""

    def __init__(self, ok=True):
        self.ok = ok
        self.released = []

    def reserve(self, items): return self.ok
    def release(self, items): self.released.extend(items)


class StubPaymentsOK:
    """Payments stub that always approves charges."""
    def charge(self, amount_cents, currency): return (True, "pi_test_123")


class StubPaymentsFail:
    """Payments stub that always declines charges."""
    def charge(self, amount_cents, currency): return (False, None)


class StubPaymentsDown:
    def charge(self, amount_cents, currency):
        raise httpx.ConnectError("stripe unreachable")


def make_order(*items):
    return Order(id=None, items=list(items), total_cents=29500, currency="USD")


def test_place_order_ok():
    """Happy path: reserve succeeds and payment is approved."""
    service = OrderService(StubInventory(), StubPaymentsOK())
    out = service.place_order(make_order(OrderItem("DCB609", 2)))
    assert out.status == OrderStatus.CONFIRMED
    assert out.transaction_id == "pi_test_123"


def test_place_order_empty():
    """Validation: placing an empty order raises EMPTY_ORDER error."""
    service = OrderService(StubInventory(), StubPaymentsOK())
    with pytest.raises(ValueError) as e:
        service.place_order(make_order())
    assert str(e.value) == "EMPTY_ORDER"


def test_place_order_insufficient_stock():
    service = OrderService(StubInventory(ok=False), StubPaymentsOK())
    order = make_order(OrderItem("DCB615", 99))
    with pytest.raises(ValueError) as e:
        service.place_order(order)
    assert str(e.value) == "INSUFFICIENT_STOCK"
    assert order.status == OrderStatus.STOCK_FAILED


def test_place_order_payment_failed_releases_stock():
    """A declined charge marks the order and gives the reservation back."""
    inventory = StubInventory()
    service = OrderService(inventory, StubPaymentsFail())
    order = make_order(OrderItem("DCB606", 1))
    with pytest.raises(ValueError) as e:
        service.place_order(order)
    assert str(e.value) == "PAYMENT_FAILED"
    assert order.status == OrderStatus.PAYMENT_FAILED
    assert inventory.released == [OrderItem("DCB606", 1)]


def test_place_order_payment_outage_releases_and_propagates():
    inventory = StubInventory()
    service = OrderService(inventory, StubPaymentsDown())
    order = make_order(OrderItem("DCB606", 1))
    with pytest.raises(httpx.ConnectError):
        service.place_order(order)
    assert order.status == OrderStatus.CREATED
    assert inventory.released == [OrderItem("DCB606", 1)]
