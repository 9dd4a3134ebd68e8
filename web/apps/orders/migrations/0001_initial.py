import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_id", models.BigIntegerField(editable=False, null=True, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("CREATED", "Created"),
                            ("STOCK_RESERVED", "Stock Reserved"),
                            ("STOCK_FAILED", "Stock Failed"),
                            ("PAID", "Paid"),
                            ("PAYMENT_FAILED", "Payment Failed"),
                            ("CONFIRMED", "Confirmed"),
                            ("CANCELLED", "Cancelled"),
                            ("REFUNDED", "Refunded"),
                        ],
                        default="CREATED",
                        max_length=32,
                    ),
                ),
                ("order_type", models.CharField(default="standard", max_length=32)),
                ("priority", models.CharField(default="standard", max_length=16)),
                ("customer_id", models.CharField(blank=True, default="", max_length=64)),
                ("customer_email", models.CharField(blank=True, default="", max_length=254)),
                ("cart_id", models.UUIDField(blank=True, null=True)),
                ("subtotal_cents", models.PositiveIntegerField(default=0)),
                ("discount_cents", models.PositiveIntegerField(default=0)),
                ("tax_cents", models.PositiveIntegerField(default=0)),
                ("shipping_cents", models.PositiveIntegerField(default=0)),
                ("total_cents", models.PositiveIntegerField(default=0)),
                ("refunded_cents", models.PositiveIntegerField(default=0)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("transaction_id", models.CharField(blank=True, max_length=255, null=True)),
                ("stripe_session_id", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("stock_reserved", models.BooleanField(default=False)),
                ("stage", models.CharField(default="DRAFT", max_length=32)),
                ("held_from", models.CharField(blank=True, default="", max_length=32)),
                ("stage_failed", models.BooleanField(default=False)),
                ("failure_code", models.CharField(blank=True, default="", max_length=64)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("escalated", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "orders", "ordering": ["-internal_id"]},
        ),
        migrations.CreateModel(
            name="OrderItemModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=32)),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price_cents", models.PositiveIntegerField(default=0)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "order_items", "ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="OrderEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_type", models.CharField(max_length=32)),
                ("from_stage", models.CharField(max_length=32)),
                ("to_stage", models.CharField(max_length=32)),
                ("reason", models.CharField(blank=True, default="", max_length=500)),
                ("source", models.CharField(default="user", max_length=16)),
                ("severity", models.CharField(default="info", max_length=16)),
                ("actor", models.CharField(blank=True, default="", max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "order_events", "ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=255, unique=True)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveSmallIntegerField(default=0)),
                ("response_body", models.JSONField(default=dict)),
                ("order_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "order_idempotency_keys"},
        ),
    ]
