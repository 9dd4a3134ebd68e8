import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("company_name", models.CharField(max_length=200)),
                ("contact_name", models.CharField(blank=True, default="", max_length=200)),
                (
                    "tier",
                    models.CharField(
                        choices=[("STANDARD", "Standard"), ("PREMIUM", "Premium"), ("ENTERPRISE", "Enterprise")],
                        default="STANDARD",
                        max_length=16,
                    ),
                ),
                ("warehouses", models.JSONField(blank=True, default=list)),
                ("permissions", models.JSONField(blank=True, default=list)),
                ("password_hash", models.CharField(max_length=128)),
                ("is_active", models.BooleanField(default=True)),
                ("failed_login_attempts", models.PositiveSmallIntegerField(default=0)),
                ("locked_until", models.DateTimeField(blank=True, null=True)),
                ("last_login_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "suppliers"},
        ),
        migrations.CreateModel(
            name="SupplierSession",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("warehouse", models.CharField(blank=True, default="", max_length=8)),
                ("ip_address", models.CharField(blank=True, default="", max_length=64)),
                ("user_agent", models.CharField(blank=True, default="", max_length=500)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_used_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField()),
                ("revoked", models.BooleanField(default=False)),
                (
                    "supplier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sessions",
                        to="accounts.supplier",
                    ),
                ),
            ],
            options={
                "db_table": "supplier_sessions",
                "ordering": ["-last_used_at"],
                "indexes": [models.Index(fields=["supplier", "revoked"], name="supplier_sessions_active_idx")],
            },
        ),
    ]
