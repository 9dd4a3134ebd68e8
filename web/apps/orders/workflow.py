"""Order application service: placement, lifecycle actions and refunds.

``OrderWorkflow`` is where the pure pieces meet the outside world. It prices
orders from the catalog, places them through ``OrderService``, runs the
``LifecycleEngine`` with gates that talk to the payment and inventory ports,
persists state and ``OrderEvent`` rows, and notifies customers and
operations.

Errors follow the domain convention: ``ValueError`` with a short code.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import stripe
from django.conf import settings
from django.db import transaction

from apps.cart.catalog import get_product
from apps.cart.pricing import CartLine, PricingCalculator
from apps.notifications.domain import MessagePriority, MessageType, NotificationContext, OrderMessage
from apps.notifications.providers import get_notification_service
from apps.payments.gateway import StripeGateway
from gateway.exceptions import UpstreamError

from . import providers
from .domain import Order, OrderItem, OrderStatus
from .lifecycle import LifecycleEngine, LifecycleResult, StageFailed, workflow_for
from .models import OrderEvent, OrderModel
from .repository import OrderRepository
from .schemas import CreateOrderDTO

logger = logging.getLogger("orders.workflow")

PAID_STATUSES = frozenset({OrderStatus.CONFIRMED.value, OrderStatus.PAID.value})


def price_lines(items) -> list[CartLine]:
    return [
        CartLine(sku=i.sku, quantity=i.quantity, unit_price_cents=get_product(i.sku).price_cents) for i in items
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderWorkflow:
    def __init__(
        self,
        order_service_factory: Optional[Callable] = None,
        notifier_factory: Callable = get_notification_service,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.order_service_factory = order_service_factory or providers.get_order_service
        self.notifier_factory = notifier_factory
        self.clock = clock
        self.repo = OrderRepository()
        self.pricing = PricingCalculator()

    # ---- creation ----
    def create_order(
        self, dto: CreateOrderDTO, idempotency_key: Optional[str] = None, actor: str = ""
    ) -> OrderModel:
        """Price and place an order, or store it as a draft.

        Placed orders enter the workflow right after the payment stage with
        status CONFIRMED; drafts enter at DRAFT with status CREATED.

        Raises:
            ValueError: placement codes from ``OrderService.place_order``.
        """
        lines = price_lines(dto.items)
        totals = self.pricing.calculate_cart_total(lines)
        order = Order(
            id=None,
            items=[OrderItem(sku=i.sku, quantity=i.quantity) for i in dto.items],
            total_cents=totals.total_cents,
            currency=dto.currency,
            order_type=dto.order_type,
            priority=dto.priority,
        )
        workflow = workflow_for(dto.order_type)

        if dto.draft:
            stage = workflow.stages[0].name
        else:
            service = self.order_service_factory(
                idempotency_key=idempotency_key, payment_method=dto.payment_method_id
            )
            service.place_order(order)
            stage = workflow.fulfillment_stage()

        obj = self.repo.create(
            order,
            lines,
            totals,
            stage=stage,
            customer_id=dto.customer_id or "",
            customer_email=dto.customer_email or "",
            payment_method_id=dto.payment_method_id or "",
        )
        if order.status == OrderStatus.CONFIRMED:
            obj.paid_at = self.clock()
            obj.save(update_fields=["paid_at"])
        OrderEvent.objects.create(
            order=obj, event_type="created", from_stage="", to_stage=stage, reason="order created", actor=actor
        )
        logger.info(
            "order created",
            extra={"order_id": str(obj.id), "order_status": obj.status, "stage": stage, "total_cents": obj.total_cents},
        )
        if order.status == OrderStatus.CONFIRMED:
            self.notify_customer(obj, "Order confirmed", f"Your order {obj.id} has been confirmed.")
        return obj

    # ---- lifecycle ----
    def apply(
        self,
        order_id,
        action: str,
        reason: str,
        target_stage: Optional[str] = None,
        auto_progress: bool = True,
        notifications: bool = True,
        actor: str = "",
        metadata: Optional[dict] = None,
    ) -> tuple[OrderModel, LifecycleResult]:
        """Apply one lifecycle action and persist the outcome.

        Raises:
            ValueError: ``NOT_FOUND``, or ``REFUND_FAILED`` when a paid order
                cannot be refunded on cancel (nothing is persisted then).
        """
        with transaction.atomic():
            try:
                obj = OrderModel.objects.select_for_update().get(id=order_id)
            except OrderModel.DoesNotExist:
                raise ValueError("NOT_FOUND")

            engine = LifecycleEngine(
                workflow_for(obj.order_type),
                gate=lambda stage: self._gate(obj, stage),
                # sessions cancelled by Stripe itself are already expired
                on_cancel=lambda state: self._release_and_refund(obj, close_checkout=actor != "stripe"),
                clock=self.clock,
            )
            state = self.repo.lifecycle_state(obj)
            result = engine.apply(state, action, reason, target_stage=target_stage, auto_progress=auto_progress)
            self.repo.apply_lifecycle_state(obj, state)
            obj.save()
            OrderEvent.objects.bulk_create(
                [
                    OrderEvent(
                        order=obj,
                        event_type=e.event_type,
                        from_stage=e.from_stage,
                        to_stage=e.to_stage,
                        reason=e.reason,
                        source=e.source,
                        severity=e.severity,
                        actor=actor,
                        metadata={**(metadata or {}), **e.metadata},
                    )
                    for e in result.events
                ]
            )

        logger.info(
            "lifecycle action",
            extra={
                "order_id": str(obj.id),
                "action": action,
                "success": result.success,
                "error": result.error,
                "from_stage": result.previous_stage,
                "to_stage": result.current_stage,
            },
        )
        if result.events:
            if notifications:
                self.notify_customer(
                    obj,
                    f"Order update: {obj.stage}",
                    f"Order {obj.id} moved from {result.previous_stage} to {result.current_stage}. {reason}",
                    priority=MessagePriority.HIGH if not result.success else MessagePriority.NORMAL,
                )
            if any(e.event_type == "escalated" for e in result.events):
                self._notify_ops(obj, reason)
        return obj, result

    def refund(self, order_id, amount_cents: Optional[int] = None, reason: str = "", actor: str = "") -> OrderModel:
        """Refund a paid order, fully or partially.

        Raises:
            ValueError: ``NOT_FOUND``, ``NOT_REFUNDABLE``, ``INVALID_AMOUNT``
                or ``REFUND_FAILED``.
        """
        with transaction.atomic():
            try:
                obj = OrderModel.objects.select_for_update().get(id=order_id)
            except OrderModel.DoesNotExist:
                raise ValueError("NOT_FOUND")
            if not obj.transaction_id or obj.status not in PAID_STATUSES:
                raise ValueError("NOT_REFUNDABLE")
            refundable = obj.captured_cents - obj.refunded_cents
            amount = refundable if amount_cents is None else amount_cents
            if amount <= 0 or amount > refundable:
                raise ValueError("INVALID_AMOUNT")

            payments = providers.get_payments()
            partial = amount < obj.captured_cents
            if not payments.refund(obj.transaction_id, amount if partial else None):
                raise ValueError("REFUND_FAILED")

            obj.refunded_cents += amount
            if obj.refunded_cents >= obj.captured_cents:
                obj.status = OrderStatus.REFUNDED.value
            obj.save(update_fields=["refunded_cents", "status", "updated_at"])
            OrderEvent.objects.create(
                order=obj,
                event_type="refunded",
                from_stage=obj.stage,
                to_stage=obj.stage,
                reason=reason,
                severity="warning",
                actor=actor,
                metadata={"amount_cents": amount},
            )

        logger.info("order refunded", extra={"order_id": str(obj.id), "amount_cents": amount})
        self.notify_customer(obj, "Refund issued", f"A refund of ${amount / 100:,.2f} was issued for order {obj.id}.")
        return obj

    # ---- hooks ----
    def _gate(self, obj: OrderModel, stage: str) -> None:
        """Work that must succeed before ``obj`` leaves ``stage``."""
        workflow = workflow_for(obj.order_type)
        if stage == workflow.stages[0].name and not obj.items.exists():
            raise StageFailed("EMPTY_ORDER")
        if stage != workflow.payment_stage() or obj.status in PAID_STATUSES:
            return
        if obj.stripe_session_id:
            # Hosted checkout: only the Stripe webhook can capture payment
            raise StageFailed("PAYMENT_PENDING")

        order = self.repo.to_domain(obj)
        # every failed attempt records events, so the key changes per attempt
        service = self.order_service_factory(
            idempotency_key=f"order-{obj.id}-payment-{obj.events.count()}",
            payment_method=obj.payment_method_id or None,
        )
        try:
            service.place_order(order)
        except ValueError as e:
            obj.status = order.status.value
            raise StageFailed(str(e))
        except Exception:
            logger.warning("payment stage upstream failure", extra={"order_id": str(obj.id)}, exc_info=True)
            obj.status = OrderStatus.CREATED.value
            raise StageFailed("UPSTREAM_UNAVAILABLE")

        obj.status = order.status.value
        obj.transaction_id = order.transaction_id
        obj.captured_cents = order.total_cents
        obj.stock_reserved = True
        obj.paid_at = self.clock()

    def _release_and_refund(self, obj: OrderModel, close_checkout: bool = True) -> None:
        if obj.transaction_id and obj.status in PAID_STATUSES:
            refundable = obj.captured_cents - obj.refunded_cents
            if refundable > 0 and not providers.get_payments().refund(obj.transaction_id, None):
                raise ValueError("REFUND_FAILED")
            obj.refunded_cents = obj.captured_cents
            obj.status = OrderStatus.REFUNDED.value
        elif obj.status != OrderStatus.REFUNDED.value:
            obj.status = OrderStatus.CANCELLED.value
        if obj.stock_reserved:
            order = self.repo.to_domain(obj)
            providers.get_inventory().release(order.items)
            obj.stock_reserved = False
        if close_checkout and obj.stripe_session_id and obj.status == OrderStatus.CANCELLED.value:
            self._expire_checkout(obj)

    def _expire_checkout(self, obj: OrderModel) -> None:
        # A session paid after this point is refunded by the completed webhook
        try:
            StripeGateway().expire_checkout_session(obj.stripe_session_id)
        except (stripe.StripeError, UpstreamError):
            logger.warning(
                "checkout session not expired", extra={"order_id": str(obj.id)}, exc_info=True
            )

    # ---- notifications ----
    def notify_customer(
        self, obj: OrderModel, subject: str, content: str, priority: MessagePriority = MessagePriority.NORMAL
    ) -> None:
        if not (obj.customer_id or obj.customer_email):
            return
        message = OrderMessage(subject=subject, content=content, priority=priority)
        context = NotificationContext(
            order_id=str(obj.id), customer_id=obj.customer_id, customer_email=obj.customer_email
        )
        self._send(message, context)

    def _notify_ops(self, obj: OrderModel, reason: str) -> None:
        recipient = settings.OPS_NOTIFICATION_RECIPIENT
        if not recipient:
            return
        message = OrderMessage(
            subject=f"Order {obj.id} escalated",
            content=f"Order {obj.id} at stage {obj.stage} was escalated: {reason}",
            priority=MessagePriority.CRITICAL,
            message_type=MessageType.ALERT,
        )
        self._send(message, NotificationContext(order_id=str(obj.id), customer_id="ops", customer_email=recipient))

    def _send(self, message: OrderMessage, context: NotificationContext) -> None:
        # Delivery problems must never undo an order transition
        try:
            result = self.notifier_factory().send(message, context)
        except Exception:
            logger.exception("notification dispatch failed", extra={"order_id": context.order_id})
            return
        if not result.success:
            logger.warning("notification partially failed", extra={"order_id": context.order_id, "errors": result.errors})

    def mark_payment_failed(self, obj: OrderModel, code: str = "PAYMENT_FAILED", actor: str = "stripe") -> None:
        """Flag the payment stage of a checkout order as failed."""
        if obj.stage_failed and obj.failure_code == code:
            return
        obj.status = OrderStatus.PAYMENT_FAILED.value
        obj.stage_failed, obj.failure_code = True, code
        obj.save(update_fields=["status", "stage_failed", "failure_code", "updated_at"])
        OrderEvent.objects.create(
            order=obj,
            event_type="stage_failed",
            from_stage=obj.stage,
            to_stage=obj.stage,
            reason="payment failed",
            source="system",
            severity="error",
            actor=actor,
            metadata={"code": code},
        )
