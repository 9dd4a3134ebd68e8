from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="NotificationPreference",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_id", models.CharField(max_length=64, unique=True)),
                ("email", models.CharField(blank=True, default="", max_length=254)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("webhook_url", models.URLField(blank=True, default="", max_length=500)),
                ("device_tokens", models.JSONField(blank=True, default=list)),
                ("email_order_updates", models.BooleanField(default=True)),
                ("sms_urgent_alerts", models.BooleanField(default=True)),
                ("push_real_time", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "notification_preferences"},
        ),
        migrations.CreateModel(
            name="DeliveryLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("delivery_id", models.CharField(max_length=64, unique=True)),
                ("message_id", models.CharField(max_length=64)),
                ("order_id", models.CharField(blank=True, default="", max_length=64)),
                ("customer_id", models.CharField(blank=True, default="", max_length=64)),
                ("channel", models.CharField(max_length=16)),
                ("provider", models.CharField(max_length=32)),
                ("provider_message_id", models.CharField(blank=True, default="", max_length=128)),
                ("status", models.CharField(max_length=16)),
                ("error", models.CharField(blank=True, default="", max_length=255)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "notification_deliveries", "ordering": ["-created_at", "-id"]},
        ),
    ]
