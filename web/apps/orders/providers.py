"""Factories that wire the domain ports to concrete adapters.

``USE_HTTP_ADAPTERS`` selects the HTTP inventory client over the in-process
stub; ``USE_STRIPE`` selects Stripe over the payments stub. Views call these
through the module (``providers.get_order_service()``) so tests can
monkeypatch a single symbol.
"""

from typing import Optional

from django.conf import settings

from apps.payments.client import StripePaymentsClient

from .adapters import InventoryStub, PaymentsStub
from .domain import InventoryPort, OrderService, PaymentsPort
from .http_adapters import HttpInventoryClient


def get_inventory() -> InventoryPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpInventoryClient()
    return InventoryStub()


def get_payments(
    idempotency_key: Optional[str] = None, payment_method: Optional[str] = None
) -> PaymentsPort:
    if getattr(settings, "USE_STRIPE", True):
        return StripePaymentsClient(payment_method=payment_method, idempotency_key=idempotency_key)
    return PaymentsStub()


def get_order_service(
    idempotency_key: Optional[str] = None, payment_method: Optional[str] = None
) -> OrderService:
    """Return an ``OrderService`` wired according to settings.

    Args:
        idempotency_key: Forwarded to the payments adapter.
        payment_method: Stripe payment method id for the charge.
    """
    return OrderService(
        inventory=get_inventory(),
        payments=get_payments(idempotency_key=idempotency_key, payment_method=payment_method),
    )
