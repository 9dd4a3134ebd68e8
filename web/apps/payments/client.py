"""``PaymentsPort`` implementation backed by Stripe payment intents.

Card errors are business declines. Connection and 5xx API errors are retried
with the same backoff policy as the inventory client and feed a circuit
breaker, so a Stripe outage turns into ``UPSTREAM_UNAVAILABLE`` quickly.
"""

import logging
import time
from typing import Callable, Optional, Tuple

import stripe

from apps.orders.domain import PaymentsPort
from apps.orders.http_adapters import backoff_sleep, make_breaker, retry_policy

from .gateway import StripeGateway

logger = logging.getLogger("payments.stripe")

_stripe_cb = make_breaker("stripe")

_TRANSIENT = (stripe.APIConnectionError, stripe.RateLimitError)


def _is_transient(exc: stripe.StripeError) -> bool:
    if isinstance(exc, _TRANSIENT):
        return True
    status = getattr(exc, "http_status", None)
    return status is not None and status >= 500


class StripePaymentsClient(PaymentsPort):
    """Charge and refund through Stripe.

    ``idempotency_key`` is forwarded to Stripe so a replayed order request
    never charges twice. ``payment_method`` is the Stripe payment method id
    the storefront collected.
    """

    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        payment_method: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway or StripeGateway()
        self.payment_method = payment_method
        self.idempotency_key = idempotency_key
        self.sleep = sleep

    def charge(self, amount_cents: int, currency: str) -> Tuple[bool, Optional[str]]:
        if amount_cents <= 0:
            return (False, None)
        try:
            intent = self._call(
                self.gateway.create_payment_intent,
                amount_cents,
                currency,
                payment_method=self.payment_method,
                idempotency_key=self.idempotency_key,
            )
        except stripe.CardError as e:
            logger.info("card declined", extra={"decline_code": getattr(e, "code", None)})
            return (False, None)

        if intent.status != "succeeded":
            logger.info("payment intent not captured", extra={"intent": intent.id, "intent_status": intent.status})
            return (False, None)
        return (True, intent.id)

    def refund(self, transaction_id: str, amount_cents: Optional[int] = None) -> bool:
        key = f"{self.idempotency_key}-refund" if self.idempotency_key else None
        try:
            refund = self._call(
                self.gateway.create_refund, transaction_id, amount_cents=amount_cents, idempotency_key=key
            )
        except stripe.InvalidRequestError as e:
            logger.warning("refund rejected", extra={"intent": transaction_id, "error": str(e)})
            return False
        return refund.status in ("succeeded", "pending")

    def _call(self, fn, *args, **kwargs):
        """Run a Stripe call under the breaker with retries on transient errors."""
        max_attempts, backoff, cap = retry_policy()
        _stripe_cb.before_call()
        tries = 0
        try:
            while True:
                try:
                    result = fn(*args, **kwargs)
                    _stripe_cb.on_success()
                    return result
                except stripe.StripeError as e:
                    if not _is_transient(e):
                        _stripe_cb.on_success()  # Stripe answered
                        raise
                    tries += 1
                    if tries >= max_attempts:
                        _stripe_cb.on_failure()
                        logger.warning("stripe unavailable", extra={"attempts": tries, "error": str(e)})
                        raise
                    backoff_sleep(tries, backoff, cap, sleep=self.sleep)
        finally:
            _stripe_cb.on_finish()
