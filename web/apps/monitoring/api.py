"""Health endpoint for load balancers and uptime probes.

Reports one entry per component; the response is 200 only when every
component is healthy and 503 otherwise (degraded included).
"""

import logging
import time
from datetime import datetime, timezone

from django.conf import settings
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger("monitoring")

REQUIRED_SETTINGS = ("JWT_SECRET", "JWT_REFRESH_SECRET", "STRIPE_WEBHOOK_SECRET")


def _ms(start: float) -> str:
    return f"{int((time.monotonic() - start) * 1000)}ms"


def check_database() -> dict:
    start = time.monotonic()
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
    except Exception as e:
        logger.warning("health: database unavailable", extra={"error": str(e)})
        return {"status": "unhealthy", "message": str(e) or "Database check failed"}
    return {"status": "healthy", "message": "Database connection successful", "response_time": _ms(start)}


def check_stripe() -> dict:
    if not settings.STRIPE_SECRET_KEY:
        return {"status": "unhealthy", "message": "Stripe API key not configured"}
    return {"status": "healthy", "message": "Stripe configuration available"}


def check_email() -> dict:
    if not (settings.EMAIL_HOST and settings.EMAIL_HOST_USER):
        return {"status": "degraded", "message": "Email service not fully configured"}
    return {"status": "healthy", "message": "Email service configured"}


def check_environment() -> dict:
    missing = [name for name in REQUIRED_SETTINGS if not getattr(settings, name, "")]
    if missing:
        return {"status": "unhealthy", "message": f"Missing required settings: {', '.join(missing)}"}
    return {"status": "healthy", "message": "All required settings present"}


def health_view(_request):
    start = time.monotonic()
    checks = {
        "database": check_database(),
        "stripe": check_stripe(),
        "email": check_email(),
        "environment": check_environment(),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())
    return JsonResponse(
        {
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.APP_VERSION,
            "checks": checks,
            "response_time": _ms(start),
        },
        status=200 if healthy else 503,
    )
