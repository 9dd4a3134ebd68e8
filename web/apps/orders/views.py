"""HTTP views for the orders app.

Views stay small: they validate requests with pydantic, delegate to
``OrderWorkflow`` (which wires ``OrderService`` through
``providers.get_order_service()``), and map domain error codes to HTTP
statuses.

Idempotency: with an ``Idempotency-Key`` header, the create endpoint stores
its first response and replays it (``Idempotent-Replay: true``) for retries
with the same payload; the same key with another payload is a 409. The key
is also forwarded to Stripe so a retried request cannot charge twice.
"""

import logging

from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.exceptions import ValidationFailed, error_for_code, parse_body

from .idempotency import finalize, get_or_create_idempotent
from .models import OrderEvent, OrderModel
from .schemas import CreateOrderDTO, LifecycleRequestDTO, OrderReadDTO, RefundDTO
from .workflow import OrderWorkflow

logger = logging.getLogger("orders.views")

PLACEMENT_STATUSES = {
    "EMPTY_ORDER": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_STOCK": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PAYMENT_FAILED": status.HTTP_402_PAYMENT_REQUIRED,
}

LIFECYCLE_STATUSES = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "NOTHING_TO_RETRY": status.HTTP_409_CONFLICT,
    "STAGE_FAILED": status.HTTP_409_CONFLICT,
    "PAYMENT_PENDING": status.HTTP_409_CONFLICT,
    "PREREQUISITE_NOT_MET": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "RETRY_LIMIT_EXCEEDED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "REFUND_FAILED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "UPSTREAM_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    **PLACEMENT_STATUSES,
}

REFUND_STATUSES = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "NOT_REFUNDABLE": status.HTTP_409_CONFLICT,
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "REFUND_FAILED": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def order_payload(o: OrderModel) -> dict:
    dto = OrderReadDTO(
        id=str(o.id),
        status=o.status,
        stage=o.stage,
        order_type=o.order_type,
        priority=o.priority,
        amount_cents=o.total_cents,
        subtotal_cents=o.subtotal_cents,
        discount_cents=o.discount_cents,
        tax_cents=o.tax_cents,
        shipping_cents=o.shipping_cents,
        currency=o.currency,
        transaction_id=o.transaction_id,
        stage_failed=o.stage_failed,
        failure_code=o.failure_code or None,
        retry_count=o.retry_count,
        escalated=o.escalated,
        items=[
            {"sku": i.sku, "quantity": i.quantity, "unit_price_cents": i.unit_price_cents} for i in o.items.all()
        ],
        created_at=o.created_at,
    )
    return dto.model_dump(mode="json", exclude_none=True)


def _actor(request) -> str:
    return str(getattr(request.user, "id", "") or "")


class OrdersCollectionView(APIView):
    """List orders, or create one by orchestrating inventory and payment."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        qs = OrderModel.objects.prefetch_related("items").order_by("-created_at")
        if request.GET.get("stage"):
            qs = qs.filter(stage=request.GET["stage"].upper())
        try:
            page = int(request.GET.get("page", 1))
            page_size = min(max(int(request.GET.get("page_size", 20)), 1), 100)
        except ValueError:
            raise ValidationFailed("INVALID_PAGINATION")
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [order_payload(o) for o in page_obj.object_list],
            },
            status=200,
        )

    def post(self, request):
        """Create a new order.

        Returns:
            Response: 201 with the order; the stored response on an
            idempotent replay; 409 ``IDEMPOTENCY_CONFLICT``; 400 on
            validation errors; 422 ``INSUFFICIENT_STOCK``; 402
            ``PAYMENT_FAILED``; 503 ``UPSTREAM_UNAVAILABLE``.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        dto = parse_body(CreateOrderDTO, request.data)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status or status.HTTP_200_OK)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            obj = OrderWorkflow().create_order(dto, idempotency_key=idem_key, actor=_actor(request))
        except ValueError as e:
            code = str(e)
            status_code = PLACEMENT_STATUSES.get(code, status.HTTP_400_BAD_REQUEST)
            body = {"detail": code}
            if rec:
                finalize(rec, status_code, body)
            return Response(body, status=status_code)
        except Exception:
            logger.warning("order placement upstream failure", exc_info=True)
            body = {"detail": "UPSTREAM_UNAVAILABLE"}
            if rec:
                finalize(rec, status.HTTP_503_SERVICE_UNAVAILABLE, body)
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        # 4) Response
        body = order_payload(obj)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=obj.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid: str):
        try:
            o = OrderModel.objects.get(id=oid)
        except OrderModel.DoesNotExist:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(order_payload(o), status=200)


class OrderLifecycleView(APIView):
    """Apply a lifecycle action (advance, hold, cancel, retry, escalate, rollback)."""

    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_lifecycle"

    def post(self, request, oid: str):
        dto = parse_body(LifecycleRequestDTO, request.data)
        try:
            obj, result = OrderWorkflow().apply(
                oid,
                dto.action,
                dto.reason,
                target_stage=dto.target_stage,
                auto_progress=dto.workflow.auto_progress,
                notifications=dto.workflow.notifications,
                actor=_actor(request),
                metadata=dto.metadata,
            )
        except ValueError as e:
            raise error_for_code(str(e), LIFECYCLE_STATUSES)

        body = {**result.as_dict(), "order": order_payload(obj)}
        if result.success:
            return Response(body, status=status.HTTP_200_OK)
        body["detail"] = result.error
        return Response(body, status=LIFECYCLE_STATUSES.get(result.error, status.HTTP_409_CONFLICT))


class OrderEventsView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid: str):
        if not OrderModel.objects.filter(id=oid).exists():
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        events = OrderEvent.objects.filter(order_id=oid)
        return Response(
            {
                "order_id": str(oid),
                "results": [
                    {
                        "type": e.event_type,
                        "from_stage": e.from_stage,
                        "to_stage": e.to_stage,
                        "reason": e.reason,
                        "source": e.source,
                        "severity": e.severity,
                        "actor": e.actor,
                        "metadata": e.metadata,
                        "timestamp": e.created_at.isoformat(),
                    }
                    for e in events
                ],
            }
        )


class OrderRefundView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_lifecycle"

    def post(self, request, oid: str):
        dto = parse_body(RefundDTO, request.data)
        try:
            obj = OrderWorkflow().refund(oid, dto.amount_cents, reason=dto.reason, actor=_actor(request))
        except ValueError as e:
            raise error_for_code(str(e), REFUND_STATUSES)
        return Response(order_payload(obj), status=status.HTTP_200_OK)
