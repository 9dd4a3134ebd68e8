import uuid

from django.db import models


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        CREATED = "CREATED"
        STOCK_RESERVED = "STOCK_RESERVED"
        STOCK_FAILED = "STOCK_FAILED"
        PAID = "PAID"
        PAYMENT_FAILED = "PAYMENT_FAILED"
        CONFIRMED = "CONFIRMED"
        CANCELLED = "CANCELLED"
        REFUNDED = "REFUNDED"

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.CREATED)
    order_type = models.CharField(max_length=32, default="standard")
    priority = models.CharField(max_length=16, default="standard")
    customer_id = models.CharField(max_length=64, blank=True, default="")
    customer_email = models.CharField(max_length=254, blank=True, default="")
    cart_id = models.UUIDField(null=True, blank=True)

    # Amounts, integer cents
    subtotal_cents = models.PositiveIntegerField(default=0)
    discount_cents = models.PositiveIntegerField(default=0)
    tax_cents = models.PositiveIntegerField(default=0)
    shipping_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)
    # What the processor captured; a checkout coupon can make it differ from total_cents
    captured_cents = models.PositiveIntegerField(default=0)
    refunded_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="USD")

    # Payment references
    transaction_id = models.CharField(max_length=255, null=True, blank=True)
    payment_method_id = models.CharField(max_length=255, blank=True, default="")
    stripe_session_id = models.CharField(max_length=255, null=True, blank=True, unique=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    stock_reserved = models.BooleanField(default=False)

    # Lifecycle
    stage = models.CharField(max_length=32, default="DRAFT")
    held_from = models.CharField(max_length=32, blank=True, default="")
    stage_failed = models.BooleanField(default=False)
    failure_code = models.CharField(max_length=64, blank=True, default="")
    retry_count = models.PositiveIntegerField(default=0)
    escalated = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, related_name="items", on_delete=models.CASCADE)
    sku = models.CharField(max_length=32)
    quantity = models.PositiveIntegerField()
    unit_price_cents = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "order_items"
        ordering = ["id"]


class OrderEvent(models.Model):
    """Append-only history of lifecycle actions applied to an order."""

    order = models.ForeignKey(OrderModel, related_name="events", on_delete=models.CASCADE)
    event_type = models.CharField(max_length=32)
    from_stage = models.CharField(max_length=32)
    to_stage = models.CharField(max_length=32)
    reason = models.CharField(max_length=500, blank=True, default="")
    source = models.CharField(max_length=16, default="user")
    severity = models.CharField(max_length=16, default="info")
    actor = models.CharField(max_length=64, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_events"
        ordering = ["created_at", "id"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=255, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_idempotency_keys"
