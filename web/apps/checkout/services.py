"""Hosted Stripe Checkout for storefront carts.

``CheckoutService.start`` turns a cart into an order waiting at the payment
stage and a Stripe Checkout Session. ``handle_event`` applies the Stripe
webhook events that settle it. Webhooks are delivered at least once, so
every handler is idempotent.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from django.conf import settings
from django.db import transaction

from apps.cart.catalog import get_product
from apps.cart.models import Cart
from apps.cart.pricing import CartTotals, PricingCalculator
from apps.cart.services import CartService
from apps.orders.domain import InventoryPort, Order, OrderItem, OrderStatus
from apps.orders.lifecycle import CANCELLED, workflow_for
from apps.orders.models import OrderEvent, OrderModel
from apps.orders.repository import OrderRepository
from apps.orders.workflow import PAID_STATUSES, OrderWorkflow
from apps.payments.gateway import StripeGateway

logger = logging.getLogger("checkout")

SHIPPING_BUSINESS_DAYS = {"standard": 5, "express": 2}


def estimated_delivery_date(shipping_method: str = "standard", start: Optional[date] = None) -> date:
    """Add 5 (standard) or 2 (express) business days, skipping weekends."""
    day = start or datetime.now(timezone.utc).date()
    remaining = SHIPPING_BUSINESS_DAYS.get(shipping_method, SHIPPING_BUSINESS_DAYS["standard"])
    while remaining:
        day += timedelta(days=1)
        if day.weekday() < 5:
            remaining -= 1
    return day


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _captured_amount(session, obj: OrderModel) -> int:
    # amount_total already reflects the volume coupon
    amount = session.get("amount_total")
    return obj.total_cents if amount is None else amount


class CheckoutService:
    def __init__(
        self,
        inventory: InventoryPort,
        gateway: Optional[StripeGateway] = None,
        workflow: Optional[OrderWorkflow] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.inventory = inventory
        self.gateway = gateway or StripeGateway()
        self.workflow = workflow or OrderWorkflow(clock=clock)
        self.carts = CartService(inventory)
        self.pricing = PricingCalculator()
        self.repo = OrderRepository()
        self.clock = clock

    # ---- session creation ----
    def start(
        self, cart_id, customer_email: str, customer_id: str = "", shipping_method: str = "standard"
    ) -> dict:
        """Create the order and its Stripe Checkout Session.

        Raises:
            ValueError: ``CART_NOT_FOUND``, ``CART_CLOSED``, ``CART_EMPTY`` or
                ``INSUFFICIENT_STOCK``.
            stripe.StripeError: Stripe refused or is unreachable; the order
                is cancelled first.
        """
        cart = self.carts.get(cart_id)
        if cart.status != Cart.Status.ACTIVE:
            raise ValueError("CART_CLOSED")
        lines = self.carts.lines(cart)
        if not lines:
            raise ValueError("CART_EMPTY")
        for line in lines:
            if self.inventory.stock(line.sku) < line.quantity:
                logger.info("checkout stock check failed", extra={"cart_id": str(cart.id), "sku": line.sku})
                raise ValueError("INSUFFICIENT_STOCK")

        totals = self.pricing.calculate_cart_total(lines)
        order = Order(
            id=None,
            items=[OrderItem(sku=l.sku, quantity=l.quantity) for l in lines],
            total_cents=totals.total_cents,
            currency=settings.STRIPE_CURRENCY.upper(),
        )
        obj = self.repo.create(
            order,
            lines,
            totals,
            stage=workflow_for(order.order_type).payment_stage(),
            customer_id=customer_id or cart.owner_id,
            customer_email=customer_email,
            cart_id=cart.id,
        )

        expires_at = self.clock() + timedelta(minutes=settings.CHECKOUT_SESSION_TTL_MINUTES)
        params = {
            "mode": "payment",
            "line_items": self._line_items(lines, totals),
            "customer_email": customer_email,
            "billing_address_collection": "required",
            "shipping_address_collection": {"allowed_countries": list(settings.STRIPE_ALLOWED_COUNTRIES)},
            "success_url": f"{settings.PUBLIC_URL}/customer/orders/{obj.id}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.PUBLIC_URL}/customer/checkout?canceled=true",
            "expires_at": int(expires_at.timestamp()),
            "metadata": {"order_id": str(obj.id), "cart_id": str(cart.id)},
            "payment_intent_data": {"metadata": {"order_id": str(obj.id)}},
        }
        try:
            if totals.volume_discount:
                params["discounts"] = [{"coupon": self.gateway.ensure_volume_coupon(totals.volume_discount.percent_off)}]
            session = self.gateway.create_checkout_session(**params)
        except Exception:
            obj.status = OrderStatus.CANCELLED.value
            obj.stage = CANCELLED
            obj.save(update_fields=["status", "stage", "updated_at"])
            raise

        obj.stripe_session_id = session["id"]
        obj.save(update_fields=["stripe_session_id", "updated_at"])
        OrderEvent.objects.create(
            order=obj,
            event_type="checkout_started",
            from_stage=obj.stage,
            to_stage=obj.stage,
            reason="stripe checkout session created",
            metadata={"session_id": session["id"]},
        )
        logger.info(
            "checkout started",
            extra={"order_id": str(obj.id), "session_id": session["id"], "total_cents": obj.total_cents},
        )
        return {
            "session_id": session["id"],
            "url": session["url"],
            "order_id": str(obj.id),
            "total_cents": obj.total_cents,
            "expires_at": expires_at.isoformat(),
            "estimated_delivery": estimated_delivery_date(shipping_method, self.clock().date()).isoformat(),
        }

    def _line_items(self, lines, totals: CartTotals) -> list:
        currency = settings.STRIPE_CURRENCY
        items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": get_product(l.sku).name, "description": f"SKU: {l.sku}"},
                    "unit_amount": l.unit_price_cents,
                },
                "quantity": l.quantity,
            }
            for l in lines
        ]
        if totals.tax_cents > 0:
            rate = int(self.pricing.TAX_RATE * 100)
            items.append(self._fee_line(currency, "Sales Tax", f"{rate}% sales tax", totals.tax_cents))
        if totals.shipping_cents > 0:
            items.append(self._fee_line(currency, "Standard Shipping", "3-5 business days", totals.shipping_cents))
        return items

    @staticmethod
    def _fee_line(currency, name, description, amount_cents) -> dict:
        return {
            "price_data": {
                "currency": currency,
                "product_data": {"name": name, "description": description},
                "unit_amount": amount_cents,
            },
            "quantity": 1,
        }

    # ---- webhooks ----
    def handle_event(self, event) -> str:
        """Apply a verified Stripe event and return what happened to it."""
        if not isinstance(event, dict):
            # StripeObject stopped subclassing dict in newer SDK releases
            event = event.to_dict()
        kind = event["type"]
        data = event["data"]["object"]
        if kind == "checkout.session.completed":
            return self._completed(data)
        if kind == "checkout.session.expired":
            return self._expired(data)
        if kind == "payment_intent.payment_failed":
            return self._payment_failed(data)
        logger.info("stripe event ignored", extra={"event_type": kind, "event_id": event.get("id")})
        return "ignored"

    def _order_for_session(self, session) -> Optional[OrderModel]:
        order_id = (session.get("metadata") or {}).get("order_id")
        if order_id:
            obj = OrderModel.objects.filter(id=order_id).first()
        else:
            obj = OrderModel.objects.filter(stripe_session_id=session["id"]).first()
        if obj is None:
            logger.warning("stripe event for unknown order", extra={"session_id": session.get("id"), "order_id": order_id})
        return obj

    def _completed(self, session) -> str:
        obj = self._order_for_session(session)
        if obj is None:
            return "unknown_order"
        with transaction.atomic():
            obj = OrderModel.objects.select_for_update().get(id=obj.id)
            if obj.status in PAID_STATUSES or obj.status == OrderStatus.REFUNDED.value:
                return "already_processed"
            if obj.stage == CANCELLED:
                return self._refund_late_payment(obj, session)

            order = self.repo.to_domain(obj)
            reserved = self.inventory.reserve(order.items)
            obj.status = OrderStatus.CONFIRMED.value
            obj.transaction_id = session.get("payment_intent") or obj.transaction_id
            obj.captured_cents = _captured_amount(session, obj)
            obj.paid_at = self.clock()
            obj.stock_reserved = bool(reserved)
            obj.save(
                update_fields=["status", "transaction_id", "captured_cents", "paid_at", "stock_reserved", "updated_at"]
            )
            if not reserved:
                logger.error("paid order could not reserve stock", extra={"order_id": str(obj.id)})
                OrderEvent.objects.create(
                    order=obj,
                    event_type="stock_shortfall",
                    from_stage=obj.stage,
                    to_stage=obj.stage,
                    reason="stock could not be reserved after payment",
                    source="system",
                    severity="error",
                    actor="stripe",
                )
            if obj.cart_id:
                Cart.objects.filter(id=obj.cart_id).update(status=Cart.Status.CHECKED_OUT)

        action = "retry" if obj.stage_failed else "advance"
        obj, result = self.workflow.apply(
            obj.id, action, "payment captured by stripe checkout", notifications=False, actor="stripe"
        )
        if not result.success:
            logger.warning(
                "paid order did not advance", extra={"order_id": str(obj.id), "error": result.error}
            )
        self.workflow.notify_customer(obj, "Order confirmed", f"Your order {obj.id} has been confirmed.")
        logger.info("checkout completed", extra={"order_id": str(obj.id), "session_id": session["id"]})
        return "confirmed"

    def _refund_late_payment(self, obj: OrderModel, session) -> str:
        """Refund a session paid after its order was cancelled; ``obj`` is locked."""
        intent = session.get("payment_intent")
        captured = _captured_amount(session, obj)
        if intent:
            self.gateway.create_refund(intent, idempotency_key=f"late-refund-{session['id']}")
        obj.status = OrderStatus.REFUNDED.value
        obj.transaction_id = intent or obj.transaction_id
        obj.captured_cents = captured
        obj.refunded_cents = captured
        obj.paid_at = self.clock()
        obj.save(
            update_fields=["status", "transaction_id", "captured_cents", "refunded_cents", "paid_at", "updated_at"]
        )
        OrderEvent.objects.create(
            order=obj,
            event_type="refunded",
            from_stage=obj.stage,
            to_stage=obj.stage,
            reason="payment captured after cancellation",
            source="system",
            severity="warning",
            actor="stripe",
            metadata={"amount_cents": captured, "session_id": session["id"]},
        )
        logger.warning(
            "payment for cancelled order refunded",
            extra={"order_id": str(obj.id), "session_id": session["id"], "amount_cents": captured},
        )
        return "refunded"

    def _expired(self, session) -> str:
        obj = self._order_for_session(session)
        if obj is None:
            return "unknown_order"
        if obj.stage == CANCELLED or obj.status in PAID_STATUSES:
            return "already_processed"
        self.workflow.apply(obj.id, "cancel", "checkout session expired", actor="stripe")
        return "cancelled"

    def _payment_failed(self, intent) -> str:
        order_id = (intent.get("metadata") or {}).get("order_id")
        obj = OrderModel.objects.filter(id=order_id).first() if order_id else None
        if obj is None:
            logger.warning("payment failure for unknown order", extra={"intent": intent.get("id")})
            return "unknown_order"
        if obj.status in PAID_STATUSES:
            return "already_processed"
        error = intent.get("last_payment_error") or {}
        logger.info(
            "checkout payment failed",
            extra={"order_id": str(obj.id), "decline_code": error.get("decline_code") or error.get("code")},
        )
        self.workflow.mark_payment_failed(obj, "PAYMENT_FAILED")
        return "payment_failed"
