from django.db import models


class NotificationPreference(models.Model):
    customer_id = models.CharField(max_length=64, unique=True)
    email = models.CharField(max_length=254, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    webhook_url = models.URLField(max_length=500, blank=True, default="")
    device_tokens = models.JSONField(default=list, blank=True)
    email_order_updates = models.BooleanField(default=True)
    sms_urgent_alerts = models.BooleanField(default=True)
    push_real_time = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "notification_preferences"


class DeliveryLog(models.Model):
    delivery_id = models.CharField(max_length=64, unique=True)
    message_id = models.CharField(max_length=64)
    order_id = models.CharField(max_length=64, blank=True, default="")
    customer_id = models.CharField(max_length=64, blank=True, default="")
    channel = models.CharField(max_length=16)
    provider = models.CharField(max_length=32)
    provider_message_id = models.CharField(max_length=128, blank=True, default="")
    status = models.CharField(max_length=16)
    error = models.CharField(max_length=255, blank=True, default="")
    retry_count = models.PositiveSmallIntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "notification_deliveries"
        ordering = ["-created_at", "-id"]
