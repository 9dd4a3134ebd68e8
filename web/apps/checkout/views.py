"""Checkout and Stripe webhook endpoints."""

import logging

import stripe
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.orders import providers
from gateway.exceptions import error_for_code, parse_body

from .schemas import CheckoutDTO
from .services import CheckoutService

logger = logging.getLogger("checkout.views")

CHECKOUT_STATUSES = {
    "CART_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CART_EMPTY": status.HTTP_400_BAD_REQUEST,
    "CART_CLOSED": status.HTTP_409_CONFLICT,
    "INSUFFICIENT_STOCK": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def checkout_service() -> CheckoutService:
    return CheckoutService(providers.get_inventory())


class CheckoutView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        dto = parse_body(CheckoutDTO, request.data)
        try:
            body = checkout_service().start(
                dto.cart_id,
                dto.customer_email,
                customer_id=dto.customer_id or "",
                shipping_method=dto.shipping_method,
            )
        except ValueError as e:
            raise error_for_code(str(e), CHECKOUT_STATUSES)
        return Response(body, status=status.HTTP_201_CREATED)


class StripeWebhookView(APIView):
    """Receive Stripe events; the signature is the only authentication."""

    authentication_classes = []

    def post(self, request):
        signature = request.headers.get("Stripe-Signature", "")
        service = checkout_service()
        try:
            event = service.gateway.construct_event(request.body, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("stripe webhook rejected", extra={"error": str(e)})
            return Response({"detail": "INVALID_SIGNATURE"}, status=status.HTTP_400_BAD_REQUEST)

        outcome = service.handle_event(event)
        logger.info("stripe webhook processed", extra={"event_type": event["type"], "outcome": outcome})
        return Response({"received": True, "outcome": outcome})
