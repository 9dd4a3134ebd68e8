from types import SimpleNamespace

import pytest
import stripe

from apps.payments import client as payments_client
from apps.payments.client import StripePaymentsClient
from apps.payments.gateway import StripeGateway, StripeNotConfigured
from gateway.exceptions import CircuitOpenError


class FakeGateway:
    def __init__(self, intents=(), refunds=()):
        self.intents = list(intents)
        self.refunds = list(refunds)
        self.calls = []

    @staticmethod
    def _next(queue):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def create_payment_intent(self, amount_cents, currency, payment_method=None, idempotency_key=None, metadata=None):
        self.calls.append(("intent", amount_cents, currency, payment_method, idempotency_key))
        return self._next(self.intents)

    def create_refund(self, payment_intent, amount_cents=None, idempotency_key=None):
        self.calls.append(("refund", payment_intent, amount_cents, idempotency_key))
        return self._next(self.refunds)


def intent(status="succeeded", id="pi_1"):
    return SimpleNamespace(id=id, status=status)


def test_charge_success_forwards_idempotency_key():
    gw = FakeGateway(intents=[intent()])
    c = StripePaymentsClient(gateway=gw, payment_method="pm_card_visa", idempotency_key="idem-1")
    assert c.charge(12500, "USD") == (True, "pi_1")
    assert gw.calls == [("intent", 12500, "USD", "pm_card_visa", "idem-1")]


def test_card_error_is_a_business_decline():
    gw = FakeGateway(intents=[stripe.CardError("Your card was declined.", None, "card_declined")])
    assert StripePaymentsClient(gateway=gw).charge(12500, "USD") == (False, None)


def test_uncaptured_intent_is_a_decline():
    gw = FakeGateway(intents=[intent(status="requires_action")])
    assert StripePaymentsClient(gateway=gw).charge(12500, "USD") == (False, None)


def test_non_positive_amount_never_reaches_stripe():
    gw = FakeGateway()
    assert StripePaymentsClient(gateway=gw).charge(0, "USD") == (False, None)
    assert gw.calls == []


def test_transient_errors_are_retried(settings):
    settings.HTTP_RETRY_MAX = 3
    sleeps = []
    gw = FakeGateway(intents=[stripe.APIConnectionError("reset"), stripe.RateLimitError("slow down"), intent()])
    c = StripePaymentsClient(gateway=gw, sleep=sleeps.append)
    assert c.charge(9500, "USD") == (True, "pi_1")
    assert len(gw.calls) == 3


def test_exhausted_retries_raise_and_open_circuit(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 1
    monkeypatch.setattr(payments_client._stripe_cb, "fail_threshold", 2)
    errors = [stripe.APIConnectionError("down") for _ in range(2)]
    c = StripePaymentsClient(gateway=FakeGateway(intents=errors))

    for _ in range(2):
        with pytest.raises(stripe.APIConnectionError):
            c.charge(9500, "USD")
    with pytest.raises(CircuitOpenError):
        c.charge(9500, "USD")


def test_refund_uses_derived_idempotency_key():
    gw = FakeGateway(refunds=[SimpleNamespace(status="succeeded")])
    c = StripePaymentsClient(gateway=gw, idempotency_key="idem-9")
    assert c.refund("pi_1", 500) is True
    assert gw.calls == [("refund", "pi_1", 500, "idem-9-refund")]


def test_rejected_refund_returns_false():
    gw = FakeGateway(refunds=[stripe.InvalidRequestError("Charge already refunded", "charge")])
    assert StripePaymentsClient(gateway=gw).refund("pi_1") is False


def test_gateway_requires_secret_key(settings):
    settings.STRIPE_SECRET_KEY = ""
    with pytest.raises(StripeNotConfigured):
        StripeGateway().create_payment_intent(100, "usd")


def test_gateway_builds_confirmed_intent(settings, monkeypatch):
    captured = {}
    monkeypatch.setattr(stripe.PaymentIntent, "create", lambda **kw: captured.update(kw) or intent())
    StripeGateway(secret_key="sk_test_1").create_payment_intent(
        2500, "USD", payment_method="pm_1", idempotency_key="k1", metadata={"order_id": "o1"}
    )
    assert captured["amount"] == 2500
    assert captured["currency"] == "usd"
    assert captured["confirm"] is True
    assert captured["idempotency_key"] == "k1"
    assert captured["metadata"] == {"order_id": "o1"}


def test_volume_coupon_is_reused_when_present(monkeypatch):
    created = []
    monkeypatch.setattr(stripe.Coupon, "retrieve", lambda coupon_id: {"id": coupon_id})
    monkeypatch.setattr(stripe.Coupon, "create", lambda **kw: created.append(kw))
    assert StripeGateway(secret_key="sk_test_1").ensure_volume_coupon(15) == "VOLUME_15"
    assert created == []
