"""Persisted supplier sessions.

A session row backs every session token. Expired sessions are revoked on
access; ``cleanup`` revokes the rest in bulk.
"""

import logging
import secrets
from collections import Counter
from datetime import timedelta
from typing import Callable, List, Optional

from django.conf import settings
from django.utils import timezone

from .models import Supplier, SupplierSession

logger = logging.getLogger("accounts.sessions")

MAX_CONCURRENT_SESSIONS = 5
MAX_DISTINCT_IPS = 3
MAX_SESSIONS_PER_HOUR = 10


def new_session_id() -> str:
    return "sess_" + secrets.token_hex(16)


class SessionManager:
    def __init__(self, clock: Callable = timezone.now):
        self.clock = clock

    def _ttl(self) -> timedelta:
        return timedelta(seconds=settings.SESSION_TOKEN_TTL_SECS)

    def create(
        self,
        supplier: Supplier,
        warehouse: str = "",
        ip_address: str = "",
        user_agent: str = "",
        session_id: Optional[str] = None,
    ) -> SupplierSession:
        now = self.clock()
        session = SupplierSession.objects.create(
            id=session_id or new_session_id(),
            supplier=supplier,
            warehouse=warehouse or "",
            ip_address=ip_address or "",
            user_agent=(user_agent or "")[:500],
            created_at=now,
            last_used_at=now,
            expires_at=now + self._ttl(),
        )
        logger.info("session created", extra={"session_id": session.id, "supplier_id": str(supplier.id)})
        return session

    def get(self, session_id: str) -> Optional[SupplierSession]:
        """Live session or ``None``; an expired one is revoked on the way."""
        try:
            session = SupplierSession.objects.select_related("supplier").get(id=session_id, revoked=False)
        except SupplierSession.DoesNotExist:
            return None
        if session.expires_at <= self.clock():
            self.delete(session_id)
            return None
        return session

    def update(self, session_id: str, **fields) -> bool:
        fields.setdefault("last_used_at", self.clock())
        return SupplierSession.objects.filter(id=session_id, revoked=False).update(**fields) > 0

    def delete(self, session_id: str) -> None:
        SupplierSession.objects.filter(id=session_id).update(revoked=True)

    def delete_all(self, supplier_id) -> int:
        count = SupplierSession.objects.filter(supplier_id=supplier_id, revoked=False).update(revoked=True)
        logger.info("sessions revoked", extra={"supplier_id": str(supplier_id), "count": count})
        return count

    def refresh(self, session_id: str) -> Optional[SupplierSession]:
        session = self.get(session_id)
        if session is None:
            return None
        now = self.clock()
        session.last_used_at = now
        session.expires_at = now + self._ttl()
        session.save(update_fields=["last_used_at", "expires_at"])
        return session

    def extend(self, session_id: str, hours: int = 8) -> bool:
        if self.get(session_id) is None:
            return False
        return self.update(session_id, expires_at=self.clock() + timedelta(hours=hours))

    def active(self, supplier_id) -> List[SupplierSession]:
        return list(
            SupplierSession.objects.filter(
                supplier_id=supplier_id, revoked=False, expires_at__gt=self.clock()
            ).order_by("-last_used_at")
        )

    def cleanup(self) -> int:
        count = SupplierSession.objects.filter(revoked=False, expires_at__lte=self.clock()).update(revoked=True)
        if count:
            logger.info("expired sessions cleaned up", extra={"count": count})
        return count

    def stats(self) -> dict:
        now = self.clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        live = SupplierSession.objects.filter(revoked=False, expires_at__gt=now).select_related("supplier")
        sessions = list(live)
        durations = [(s.last_used_at - s.created_at).total_seconds() for s in sessions]
        return {
            "total_sessions": SupplierSession.objects.count(),
            "active_sessions": len(sessions),
            "sessions_today": SupplierSession.objects.filter(created_at__gte=start_of_day).count(),
            "avg_session_duration_secs": round(sum(durations) / len(durations), 1) if durations else 0.0,
            "sessions_by_warehouse": dict(Counter(s.warehouse for s in sessions if s.warehouse)),
            "sessions_by_tier": dict(Counter(s.supplier.tier for s in sessions)),
        }

    def validate_access(self, session_id: str, warehouse: Optional[str] = None, permissions=None) -> dict:
        session = self.get(session_id)
        if session is None:
            return {"valid": False, "error": "SESSION_NOT_FOUND"}
        if warehouse and session.warehouse != warehouse:
            return {"valid": False, "error": "WAREHOUSE_ACCESS_DENIED"}
        granted = set(session.supplier.permissions or [])
        if permissions and not set(permissions) <= granted:
            return {"valid": False, "error": "INSUFFICIENT_PERMISSIONS"}
        return {"valid": True, "session": session}

    def touch(self, session_id: str, activity: str) -> None:
        logger.info("session activity", extra={"session_id": session_id, "activity": activity})
        SupplierSession.objects.filter(id=session_id, revoked=False).update(last_used_at=self.clock())

    def detect_suspicious_activity(self, supplier_id) -> dict:
        """Heuristics over the supplier's live sessions.

        Two or more findings recommend ``block``; one recommends
        ``require_mfa``.
        """
        sessions = self.active(supplier_id)
        reasons = []
        if len(sessions) > MAX_CONCURRENT_SESSIONS:
            reasons.append("Multiple concurrent sessions detected")
        if len({s.ip_address for s in sessions if s.ip_address}) > MAX_DISTINCT_IPS:
            reasons.append("Sessions from multiple IP addresses")
        hour_ago = self.clock() - timedelta(hours=1)
        if sum(1 for s in sessions if s.created_at > hour_ago) > MAX_SESSIONS_PER_HOUR:
            reasons.append("Rapid session creation detected")

        action = "allow"
        if len(reasons) >= 2:
            action = "block"
        elif reasons:
            action = "require_mfa"
        return {"suspicious": bool(reasons), "reasons": reasons, "recommended_action": action}
