"""Thin wrapper over the Stripe SDK.

All Stripe traffic of the project goes through ``StripeGateway`` so tests
can swap one object instead of patching the SDK in several modules.
"""

import logging
from typing import Optional

import stripe
from django.conf import settings

from gateway.exceptions import UpstreamError

logger = logging.getLogger("payments.stripe")


class StripeNotConfigured(UpstreamError):
    pass


class StripeGateway:
    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        )

    def _configure(self) -> None:
        if not self.secret_key:
            raise StripeNotConfigured("STRIPE_NOT_CONFIGURED")
        stripe.api_key = self.secret_key

    # ---- checkout ----
    def create_checkout_session(self, **params):
        self._configure()
        session = stripe.checkout.Session.create(**params)
        logger.info("checkout session created", extra={"session_id": session["id"]})
        return session

    def retrieve_checkout_session(self, session_id: str):
        self._configure()
        return stripe.checkout.Session.retrieve(session_id)

    def expire_checkout_session(self, session_id: str):
        self._configure()
        session = stripe.checkout.Session.expire(session_id)
        logger.info("checkout session expired", extra={"session_id": session_id})
        return session

    def ensure_volume_coupon(self, percent_off: int) -> str:
        """Return the id of the ``VOLUME_<pct>`` coupon, creating it once."""
        self._configure()
        coupon_id = f"VOLUME_{percent_off}"
        try:
            stripe.Coupon.retrieve(coupon_id)
        except stripe.InvalidRequestError:
            stripe.Coupon.create(
                id=coupon_id,
                percent_off=percent_off,
                duration="once",
                name=f"Volume Discount {percent_off}%",
            )
            logger.info("volume coupon created", extra={"coupon_id": coupon_id})
        return coupon_id

    # ---- payment intents / refunds ----
    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        payment_method: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[dict] = None,
    ):
        self._configure()
        params = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        if payment_method:
            params["payment_method"] = payment_method
            params["confirm"] = True
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return stripe.PaymentIntent.create(**params)

    def create_refund(
        self,
        payment_intent: str,
        amount_cents: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ):
        self._configure()
        params = {"payment_intent": payment_intent}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return stripe.Refund.create(**params)

    # ---- webhooks ----
    def construct_event(self, payload: bytes, signature: str):
        """Verify a webhook payload.

        Raises:
            ValueError: invalid JSON payload.
            stripe.SignatureVerificationError: bad or missing signature.
        """
        if not self.webhook_secret:
            raise StripeNotConfigured("STRIPE_WEBHOOK_NOT_CONFIGURED")
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
