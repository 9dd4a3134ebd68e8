import uuid

from django.db import models
from django.utils import timezone


class Supplier(models.Model):
    TIERS = [("STANDARD", "Standard"), ("PREMIUM", "Premium"), ("ENTERPRISE", "Enterprise")]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(max_length=254, unique=True)
    company_name = models.CharField(max_length=200)
    contact_name = models.CharField(max_length=200, blank=True, default="")
    tier = models.CharField(max_length=16, choices=TIERS, default="STANDARD")
    warehouses = models.JSONField(default=list, blank=True)
    permissions = models.JSONField(default=list, blank=True)
    password_hash = models.CharField(max_length=128)
    is_active = models.BooleanField(default=True)
    failed_login_attempts = models.PositiveSmallIntegerField(default=0)
    locked_until = models.DateTimeField(null=True, blank=True)
    last_login_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "suppliers"

    # DRF treats the authenticated principal like a Django user
    @property
    def is_authenticated(self) -> bool:
        return True

    def is_locked(self, now=None) -> bool:
        now = now or timezone.now()
        return self.locked_until is not None and self.locked_until > now

    def __str__(self):
        return self.email


class SupplierSession(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    supplier = models.ForeignKey(Supplier, related_name="sessions", on_delete=models.CASCADE)
    warehouse = models.CharField(max_length=8, blank=True, default="")
    ip_address = models.CharField(max_length=64, blank=True, default="")
    user_agent = models.CharField(max_length=500, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)
    last_used_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    revoked = models.BooleanField(default=False)

    class Meta:
        db_table = "supplier_sessions"
        ordering = ["-last_used_at"]
        indexes = [models.Index(fields=["supplier", "revoked"], name="supplier_sessions_active_idx")]
