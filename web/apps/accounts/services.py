"""Registration, login, token refresh and logout for suppliers.

Failures raise ``ValueError`` with an upper-case code; ``WeakPassword``
additionally carries the policy violations.
"""

import functools
import logging
import secrets
from datetime import timedelta
from typing import Callable, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import tokens
from .models import Supplier
from .passwords import hash_password, validate_password, verify_password
from .sessions import SessionManager

logger = logging.getLogger("accounts.auth")


@functools.lru_cache(maxsize=1)
def _timing_hash() -> str:
    # unknown emails cost the same bcrypt work as known ones
    return hash_password(secrets.token_urlsafe(16))


class WeakPassword(ValueError):
    def __init__(self, violations):
        super().__init__("WEAK_PASSWORD")
        self.violations = violations


def supplier_payload(s: Supplier) -> dict:
    return {
        "id": str(s.id),
        "email": s.email,
        "company_name": s.company_name,
        "contact_name": s.contact_name,
        "tier": s.tier,
        "warehouses": s.warehouses,
        "permissions": s.permissions,
    }


def default_permissions(tier: str) -> list:
    perms = ["orders:read", "orders:write", "inventory:read"]
    if tier in ("PREMIUM", "ENTERPRISE"):
        perms.append("analytics:read")
    if tier == "ENTERPRISE":
        perms.append("bulk:write")
    return perms


class AccountService:
    def __init__(self, sessions: Optional[SessionManager] = None, clock: Callable = timezone.now):
        self.clock = clock
        self.sessions = sessions or SessionManager(clock=clock)

    def register(self, email, password, company_name, contact_name="", tier="STANDARD", warehouses=("US",)):
        check = validate_password(password, personal_info=(email, company_name, contact_name))
        if not check["valid"]:
            raise WeakPassword(check["violations"] or ["Password is too weak"])
        try:
            with transaction.atomic():
                supplier = Supplier.objects.create(
                    email=email,
                    company_name=company_name,
                    contact_name=contact_name,
                    tier=tier,
                    warehouses=list(warehouses),
                    permissions=default_permissions(tier),
                    password_hash=hash_password(password),
                )
        except IntegrityError:
            raise ValueError("EMAIL_TAKEN")
        logger.info("supplier registered", extra={"supplier_id": str(supplier.id), "tier": tier})
        return supplier

    def login(self, email, password, warehouse=None, ip_address="", user_agent="") -> dict:
        """Authenticate and open a session.

        Raises:
            ValueError: ``INVALID_CREDENTIALS``, ``ACCOUNT_LOCKED``,
                ``ACCOUNT_DISABLED``, ``WAREHOUSE_ACCESS_DENIED`` or
                ``SUSPICIOUS_ACTIVITY``.
        """
        now = self.clock()
        supplier = Supplier.objects.filter(email=email).first()
        if supplier is None:
            verify_password(password, _timing_hash())
            logger.warning("login failed", extra={"reason": "unknown_email"})
            raise ValueError("INVALID_CREDENTIALS")
        if supplier.is_locked(now):
            logger.warning("login on locked account", extra={"supplier_id": str(supplier.id)})
            raise ValueError("ACCOUNT_LOCKED")
        if not supplier.is_active:
            raise ValueError("ACCOUNT_DISABLED")

        if not verify_password(password, supplier.password_hash):
            self._register_failure(supplier, now)
            raise ValueError("INVALID_CREDENTIALS")

        if warehouse and warehouse not in (supplier.warehouses or []):
            raise ValueError("WAREHOUSE_ACCESS_DENIED")

        security = self.sessions.detect_suspicious_activity(supplier.id)
        if security["recommended_action"] == "block":
            logger.warning(
                "login blocked", extra={"supplier_id": str(supplier.id), "reasons": security["reasons"]}
            )
            raise ValueError("SUSPICIOUS_ACTIVITY")

        supplier.failed_login_attempts = 0
        supplier.locked_until = None
        supplier.last_login_at = now
        supplier.save(update_fields=["failed_login_attempts", "locked_until", "last_login_at", "updated_at"])

        warehouse = warehouse or (supplier.warehouses[0] if supplier.warehouses else "")
        session = self.sessions.create(supplier, warehouse=warehouse, ip_address=ip_address, user_agent=user_agent)
        logger.info("supplier logged in", extra={"supplier_id": str(supplier.id), "session_id": session.id})
        return {
            "access_token": tokens.generate_access_token(supplier),
            "refresh_token": tokens.generate_refresh_token(supplier.id),
            "session_token": tokens.generate_session_token(supplier.id, session.id, warehouse),
            "token_type": "Bearer",
            "expires_in": settings.ACCESS_TOKEN_TTL_SECS,
            "supplier": supplier_payload(supplier),
            "session": {"id": session.id, "warehouse": session.warehouse, "expires_at": session.expires_at.isoformat()},
            "security": {"recommended_action": security["recommended_action"], "reasons": security["reasons"]},
        }

    @transaction.atomic
    def _register_failure(self, supplier: Supplier, now) -> None:
        # count on the locked row, not the copy read before the password check
        row = Supplier.objects.select_for_update().get(pk=supplier.pk)
        row.failed_login_attempts += 1
        fields = ["failed_login_attempts", "updated_at"]
        if row.failed_login_attempts >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
            row.locked_until = now + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
            row.failed_login_attempts = 0
            fields.append("locked_until")
            logger.warning("account locked", extra={"supplier_id": str(row.id)})
        row.save(update_fields=fields)

    def refresh(self, refresh_token: str) -> dict:
        claims = tokens.verify_refresh_token(refresh_token)
        if claims is None:
            raise ValueError("INVALID_REFRESH_TOKEN")
        supplier = Supplier.objects.filter(id=claims["sub"], is_active=True).first()
        if supplier is None:
            raise ValueError("INVALID_REFRESH_TOKEN")
        pair = tokens.refresh_tokens(refresh_token, supplier)
        if pair is None:
            raise ValueError("INVALID_REFRESH_TOKEN")
        # a refresh token is single use
        tokens.blacklist_token(refresh_token)
        return {**pair, "token_type": "Bearer"}

    def logout(self, access_token: str, refresh_token: Optional[str] = None, session_token: Optional[str] = None):
        tokens.blacklist_token(access_token)
        if refresh_token:
            tokens.blacklist_token(refresh_token)
        if session_token:
            claims = tokens.verify_session_token(session_token)
            if claims is not None:
                self.sessions.delete(claims["session_id"])
            tokens.blacklist_token(session_token)
