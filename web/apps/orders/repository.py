"""Repository layer for persisting orders.

Keeps ORM details out of the domain: it takes domain ``Order`` objects and
priced lines and returns ``OrderModel`` rows, and converts rows back into
what the domain service and the lifecycle engine work on.
"""

from typing import Iterable, Optional

from django.db import transaction

from apps.cart.pricing import CartLine, CartTotals

from .domain import Order, OrderItem, OrderPriority, OrderStatus, OrderType
from .lifecycle import LifecycleState
from .models import OrderItemModel, OrderModel


class OrderRepository:
    """Persist orders and map rows back to domain objects."""

    @transaction.atomic
    def create(
        self,
        order: Order,
        lines: Iterable[CartLine],
        totals: CartTotals,
        stage: str,
        customer_id: str = "",
        customer_email: str = "",
        cart_id=None,
        stripe_session_id: Optional[str] = None,
        payment_method_id: str = "",
    ) -> OrderModel:
        """Insert an order row and its line items.

        Args:
            order: Domain order; status, currency, type and transaction id
                are copied.
            lines: Priced lines.
            totals: Totals for ``lines``.
            stage: Lifecycle stage the order enters at.

        Returns:
            OrderModel: The created row.
        """
        obj = OrderModel.objects.create(
            status=order.status.value if isinstance(order.status, OrderStatus) else order.status,
            order_type=order.order_type.value,
            priority=order.priority.value,
            customer_id=customer_id or "",
            customer_email=customer_email or "",
            cart_id=cart_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            shipping_cents=totals.shipping_cents,
            total_cents=totals.total_cents,
            captured_cents=totals.total_cents if order.status == OrderStatus.CONFIRMED else 0,
            currency=order.currency,
            transaction_id=order.transaction_id,
            payment_method_id=payment_method_id or "",
            stripe_session_id=stripe_session_id,
            stock_reserved=order.status == OrderStatus.CONFIRMED,
            stage=stage,
        )
        OrderItemModel.objects.bulk_create(
            [
                OrderItemModel(order=obj, sku=l.sku, quantity=l.quantity, unit_price_cents=l.unit_price_cents)
                for l in lines
            ]
        )
        return obj

    @staticmethod
    def to_domain(obj: OrderModel) -> Order:
        return Order(
            id=str(obj.id),
            items=[OrderItem(sku=i.sku, quantity=i.quantity) for i in obj.items.all()],
            status=OrderStatus(obj.status),
            total_cents=obj.total_cents,
            currency=obj.currency,
            transaction_id=obj.transaction_id,
            order_type=OrderType(obj.order_type),
            priority=OrderPriority(obj.priority),
        )

    @staticmethod
    def lifecycle_state(obj: OrderModel) -> LifecycleState:
        return LifecycleState(
            stage=obj.stage,
            held_from=obj.held_from,
            stage_failed=obj.stage_failed,
            failure_code=obj.failure_code,
            retry_count=obj.retry_count,
            escalated=obj.escalated,
        )

    @staticmethod
    def apply_lifecycle_state(obj: OrderModel, state: LifecycleState) -> None:
        obj.stage = state.stage
        obj.held_from = state.held_from
        obj.stage_failed = state.stage_failed
        obj.failure_code = state.failure_code
        obj.retry_count = state.retry_count
        obj.escalated = state.escalated
