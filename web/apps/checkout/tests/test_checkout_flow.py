import hashlib
import hmac
import json
import time
from datetime import date

import pytest
import stripe
from django.core import mail

from apps.cart.models import Cart
from apps.cart.services import CartService
from apps.checkout.services import CheckoutService, estimated_delivery_date
from apps.orders.adapters import InventoryStub
from apps.orders.models import OrderEvent, OrderModel
from apps.orders.workflow import OrderWorkflow

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def stripe_api(settings, monkeypatch):
    """Capture Stripe SDK calls made by the checkout."""
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    calls = {"sessions": [], "coupons": [], "expired": [], "refunds": []}

    def create_session(**params):
        calls["sessions"].append(params)
        n = len(calls["sessions"])
        return stripe.checkout.Session.construct_from(
            {"id": f"cs_test_{n}", "object": "checkout.session", "url": f"https://checkout.stripe.com/c/pay/cs_test_{n}"},
            "sk_test_123",
        )

    def retrieve_coupon(coupon_id):
        raise stripe.InvalidRequestError(f"No such coupon: '{coupon_id}'", "id")

    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    monkeypatch.setattr(stripe.Coupon, "retrieve", retrieve_coupon)
    monkeypatch.setattr(stripe.Coupon, "create", lambda **kw: calls["coupons"].append(kw) or kw)
    monkeypatch.setattr(stripe.checkout.Session, "expire", lambda sid: calls["expired"].append(sid))
    monkeypatch.setattr(stripe.Refund, "create", lambda **kw: calls["refunds"].append(kw))
    return calls


def make_cart(*lines):
    service = CartService(InventoryStub())
    cart = service.create(owner_id="cust-1")
    for sku, qty in lines:
        service.add_item(cart, sku, qty)
    return cart


def start_checkout(client, cart):
    return client.post(
        "/api/checkout/",
        data={"cart_id": str(cart.id), "customer_email": "buyer@example.com"},
        content_type="application/json",
    )


def signed_event(event_type, obj, secret=WEBHOOK_SECRET):
    payload = json.dumps({"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}).encode()
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return payload, f"t={ts},v1={sig}"


def send_event(client, event_type, obj, secret=WEBHOOK_SECRET):
    payload, header = signed_event(event_type, obj, secret)
    return client.post(
        "/api/webhooks/stripe/",
        data=payload,
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=header,
    )


def completed(order, intent="pi_123", amount_total=None):
    return {
        "id": order.stripe_session_id,
        "object": "checkout.session",
        "payment_intent": intent,
        "amount_total": order.total_cents if amount_total is None else amount_total,
        "metadata": {"order_id": str(order.id), "cart_id": str(order.cart_id)},
    }


@pytest.mark.django_db
def test_checkout_creates_order_and_stripe_session(client, stripe_api):
    cart = make_cart(("DCB615", 5))  # $1,225.00 -> 10% volume tier, free shipping

    r = start_checkout(client, cart)
    assert r.status_code == 201
    body = r.json()
    assert body["session_id"] == "cs_test_1"
    assert body["url"].startswith("https://checkout.stripe.com/")

    order = OrderModel.objects.get(id=body["order_id"])
    assert order.status == "CREATED"
    assert order.stage == "PAYMENT_PROCESSING"
    assert order.stripe_session_id == "cs_test_1"
    assert (order.subtotal_cents, order.discount_cents, order.tax_cents, order.shipping_cents) == (
        122500,
        12250,
        8820,
        0,
    )
    assert order.total_cents == 119070
    assert order.items.get().quantity == 5

    params = stripe_api["sessions"][0]
    assert params["mode"] == "payment"
    assert params["customer_email"] == "buyer@example.com"
    assert params["billing_address_collection"] == "required"
    assert params["shipping_address_collection"] == {"allowed_countries": ["US", "CA"]}
    assert params["metadata"] == {"order_id": str(order.id), "cart_id": str(cart.id)}
    assert params["discounts"] == [{"coupon": "VOLUME_10"}]
    assert 29 * 60 <= params["expires_at"] - time.time() <= 30 * 60
    names = [li["price_data"]["product_data"]["name"] for li in params["line_items"]]
    assert names == ["FlexVolt 15Ah Battery", "Sales Tax"]
    assert params["line_items"][0]["price_data"]["unit_amount"] == 24500
    assert params["line_items"][1]["price_data"]["unit_amount"] == 8820
    assert stripe_api["coupons"][0]["percent_off"] == 10


@pytest.mark.django_db
def test_checkout_adds_shipping_line_below_free_shipping(client, stripe_api):
    cart = make_cart(("DCB606", 1))
    assert start_checkout(client, cart).status_code == 201
    params = stripe_api["sessions"][0]
    names = [li["price_data"]["product_data"]["name"] for li in params["line_items"]]
    assert names == ["FlexVolt 6Ah Battery", "Sales Tax", "Standard Shipping"]
    assert "discounts" not in params


@pytest.mark.django_db
def test_checkout_rejects_empty_cart(client, stripe_api):
    cart = make_cart()
    r = start_checkout(client, cart)
    assert r.status_code == 400
    assert r.json()["detail"] == "CART_EMPTY"
    assert stripe_api["sessions"] == []


@pytest.mark.django_db
def test_checkout_rejects_unknown_cart(client, stripe_api):
    r = client.post(
        "/api/checkout/",
        data={"cart_id": "00000000-0000-0000-0000-000000000000", "customer_email": "buyer@example.com"},
        content_type="application/json",
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "CART_NOT_FOUND"


@pytest.mark.django_db
def test_checkout_rejects_out_of_stock_lines(client, stripe_api, monkeypatch):
    cart = make_cart(("DCB609", 3))
    monkeypatch.setattr(InventoryStub, "stock", lambda self, sku: 2)
    r = start_checkout(client, cart)
    assert r.status_code == 422
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert not OrderModel.objects.exists()


@pytest.mark.django_db
def test_stripe_outage_cancels_the_pending_order(client, stripe_api, monkeypatch):
    def down(**params):
        raise stripe.APIConnectionError("connection refused")

    monkeypatch.setattr(stripe.checkout.Session, "create", down)
    cart = make_cart(("DCB606", 1))
    r = start_checkout(client, cart)
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    order = OrderModel.objects.get()
    assert (order.status, order.stage) == ("CANCELLED", "CANCELLED")


@pytest.mark.django_db
def test_completed_webhook_confirms_order_once(client, stripe_api):
    cart = make_cart(("DCB609", 2))
    order = OrderModel.objects.get(id=start_checkout(client, cart).json()["order_id"])

    r = send_event(client, "checkout.session.completed", completed(order))
    assert r.status_code == 200
    assert r.json() == {"received": True, "outcome": "confirmed"}

    order.refresh_from_db()
    assert order.status == "CONFIRMED"
    assert order.transaction_id == "pi_123"
    assert order.paid_at is not None
    assert order.stock_reserved is True
    assert order.stage == "FULFILLMENT_READY"
    assert Cart.objects.get(id=cart.id).status == "checked_out"
    assert any("confirmed" in m.subject for m in mail.outbox)

    again = send_event(client, "checkout.session.completed", completed(order))
    assert again.json()["outcome"] == "already_processed"
    assert OrderEvent.objects.filter(order=order, event_type="advanced").count() == 1


@pytest.mark.django_db
def test_expired_webhook_cancels_order(client, stripe_api):
    order = OrderModel.objects.get(id=start_checkout(client, make_cart(("DCB606", 2))).json()["order_id"])

    r = send_event(
        client,
        "checkout.session.expired",
        {"id": order.stripe_session_id, "object": "checkout.session", "metadata": {"order_id": str(order.id)}},
    )
    assert r.json()["outcome"] == "cancelled"
    order.refresh_from_db()
    assert (order.status, order.stage) == ("CANCELLED", "CANCELLED")

    r = send_event(
        client,
        "checkout.session.expired",
        {"id": order.stripe_session_id, "object": "checkout.session", "metadata": {"order_id": str(order.id)}},
    )
    assert r.json()["outcome"] == "already_processed"


@pytest.mark.django_db
def test_payment_failure_then_success(client, stripe_api):
    order = OrderModel.objects.get(id=start_checkout(client, make_cart(("DCB606", 2))).json()["order_id"])
    intent = {
        "id": "pi_failed",
        "object": "payment_intent",
        "metadata": {"order_id": str(order.id)},
        "last_payment_error": {"code": "card_declined", "decline_code": "insufficient_funds"},
    }

    assert send_event(client, "payment_intent.payment_failed", intent).json()["outcome"] == "payment_failed"
    order.refresh_from_db()
    assert order.status == "PAYMENT_FAILED"
    assert order.stage_failed is True
    assert order.failure_code == "PAYMENT_FAILED"

    # the customer retries inside the same checkout session
    assert send_event(client, "checkout.session.completed", completed(order)).json()["outcome"] == "confirmed"
    order.refresh_from_db()
    assert order.status == "CONFIRMED"
    assert order.stage == "FULFILLMENT_READY"
    assert order.stage_failed is False


@pytest.mark.django_db
def test_webhook_rejects_bad_signature(client, stripe_api):
    r = send_event(client, "checkout.session.completed", {"id": "cs_x", "object": "checkout.session"}, secret="wrong")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_SIGNATURE"


@pytest.mark.django_db
def test_webhook_acknowledges_other_events(client, stripe_api):
    r = send_event(client, "customer.created", {"id": "cus_1", "object": "customer"})
    assert r.status_code == 200
    assert r.json()["outcome"] == "ignored"


@pytest.mark.django_db
def test_handle_event_accepts_sdk_event_objects(client, stripe_api):
    order = OrderModel.objects.get(id=start_checkout(client, make_cart(("DCB609", 1))).json()["order_id"])
    service = CheckoutService(InventoryStub())

    payload, header = signed_event("customer.created", {"id": "cus_1", "object": "customer"})
    assert service.handle_event(stripe.Webhook.construct_event(payload, header, WEBHOOK_SECRET)) == "ignored"

    payload, header = signed_event("checkout.session.completed", completed(order))
    event = stripe.Webhook.construct_event(payload, header, WEBHOOK_SECRET)
    assert service.handle_event(event) == "confirmed"
    order.refresh_from_db()
    assert order.status == "CONFIRMED"


@pytest.mark.django_db
def test_payment_after_cancellation_is_refunded(client, stripe_api):
    cart = make_cart(("DCB609", 2))
    order = OrderModel.objects.get(id=start_checkout(client, cart).json()["order_id"])

    OrderWorkflow().apply(order.id, "cancel", "customer changed their mind")
    assert stripe_api["expired"] == [order.stripe_session_id]

    r = send_event(client, "checkout.session.completed", completed(order, intent="pi_late"))
    assert r.json()["outcome"] == "refunded"
    assert stripe_api["refunds"][0]["payment_intent"] == "pi_late"

    order.refresh_from_db()
    assert (order.status, order.stage) == ("REFUNDED", "CANCELLED")
    assert order.stock_reserved is False
    assert order.refunded_cents == order.captured_cents == order.total_cents
    assert Cart.objects.get(id=cart.id).status == "active"
    assert not any("confirmed" in m.subject for m in mail.outbox)
    assert send_event(client, "checkout.session.completed", completed(order)).json()["outcome"] == "already_processed"
    assert len(stripe_api["refunds"]) == 1


@pytest.mark.django_db
def test_expired_session_is_not_expired_again(client, stripe_api):
    order = OrderModel.objects.get(id=start_checkout(client, make_cart(("DCB606", 1))).json()["order_id"])
    send_event(
        client,
        "checkout.session.expired",
        {"id": order.stripe_session_id, "object": "checkout.session", "metadata": {"order_id": str(order.id)}},
    )
    assert stripe_api["expired"] == []


@pytest.mark.django_db
def test_refunds_are_capped_by_the_captured_amount(client, stripe_api):
    # the coupon also discounts the tax line: (122500 + 8820) x 0.9
    order = OrderModel.objects.get(id=start_checkout(client, make_cart(("DCB615", 5))).json()["order_id"])
    send_event(client, "checkout.session.completed", completed(order, amount_total=118188))

    order.refresh_from_db()
    assert (order.total_cents, order.captured_cents) == (119070, 118188)
    workflow = OrderWorkflow()
    with pytest.raises(ValueError, match="INVALID_AMOUNT"):
        workflow.refund(order.id, 118500)

    order = workflow.refund(order.id)
    assert order.refunded_cents == 118188
    assert order.status == "REFUNDED"

def test_estimated_delivery_skips_weekends():
    friday = date(2026, 10, 16)
    assert estimated_delivery_date("standard", friday) == date(2026, 10, 23)
    assert estimated_delivery_date("express", friday) == date(2026, 10, 20)
