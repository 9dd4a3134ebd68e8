"""JWT access, refresh and session tokens for the supplier portal.

All tokens are HS256 with a fixed issuer and audience. Refresh tokens are
signed with their own secret. Verification never raises: an invalid,
expired or revoked token yields ``None`` and a log line.

Revoked tokens are kept in the Django cache under their fingerprint until
they would have expired anyway.
"""

import base64
import hashlib
import json
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import jwt
from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger("accounts.tokens")

ALGORITHM = "HS256"
BLACKLIST_PREFIX = "jwt:revoked:"
BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def _secret(name: str) -> str:
    value = getattr(settings, name, "")
    if not value:
        raise ImproperlyConfigured(f"{name} is not set")
    return value


def _encode(claims: dict, ttl: int, secret: str) -> str:
    now = int(time.time())
    payload = {
        **claims,
        "iat": now,
        "exp": now + ttl,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str, kind: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        logger.info("token expired", extra={"kind": kind})
    except jwt.InvalidTokenError as e:
        logger.warning("token rejected", extra={"kind": kind, "error": str(e)})
    return None


def generate_access_token(supplier) -> str:
    claims = {
        "sub": str(supplier.id),
        "email": supplier.email,
        "company_name": supplier.company_name,
        "tier": supplier.tier,
        "warehouses": list(supplier.warehouses or []),
        "permissions": list(supplier.permissions or []),
    }
    return _encode(claims, settings.ACCESS_TOKEN_TTL_SECS, _secret("JWT_SECRET"))


def generate_refresh_token(supplier_id) -> str:
    claims = {"sub": str(supplier_id), "type": "refresh"}
    return _encode(claims, settings.REFRESH_TOKEN_TTL_SECS, _secret("JWT_REFRESH_SECRET"))


def generate_session_token(supplier_id, session_id: str, warehouse: Optional[str] = None) -> str:
    claims = {"sub": str(supplier_id), "type": "session", "session_id": session_id}
    if warehouse:
        claims["warehouse"] = warehouse
    return _encode(claims, settings.SESSION_TOKEN_TTL_SECS, _secret("JWT_SECRET"))


def verify_access_token(token: str) -> Optional[dict]:
    """Claims of a valid, unrevoked access token, else ``None``."""
    if is_token_blacklisted(token):
        logger.info("revoked token presented")
        return None
    claims = _decode(token, _secret("JWT_SECRET"), "access")
    if claims is None:
        return None
    if not claims.get("sub") or not claims.get("email") or claims.get("type") in ("refresh", "session"):
        logger.warning("token rejected", extra={"kind": "access", "error": "invalid payload"})
        return None
    return claims


def verify_refresh_token(token: str) -> Optional[dict]:
    if is_token_blacklisted(token):
        return None
    claims = _decode(token, _secret("JWT_REFRESH_SECRET"), "refresh")
    if claims is None or claims.get("type") != "refresh" or not claims.get("sub"):
        return None
    return claims


def verify_session_token(token: str) -> Optional[dict]:
    if is_token_blacklisted(token):
        return None
    claims = _decode(token, _secret("JWT_SECRET"), "session")
    if claims is None or claims.get("type") != "session" or not claims.get("session_id"):
        return None
    return claims


def extract_token_from_header(header: Optional[str]) -> Optional[str]:
    """Accept ``Bearer <token>`` or a bare token without spaces."""
    if not header:
        return None
    m = BEARER_RE.match(header)
    if m:
        return m.group(1).strip()
    if " " not in header:
        return header
    return None


def token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


def blacklist_token(token: str) -> None:
    """Revoke ``token`` until its own expiry (at least one second)."""
    exp = get_token_expiration(token)
    ttl = 1
    if exp is not None:
        ttl = max(1, int(exp.timestamp() - time.time()))
    cache.set(BLACKLIST_PREFIX + token_fingerprint(token), True, timeout=ttl)


def is_token_blacklisted(token: str) -> bool:
    return bool(cache.get(BLACKLIST_PREFIX + token_fingerprint(token)))


def refresh_tokens(refresh_token: str, supplier) -> Optional[dict]:
    """Issue a new token pair if ``refresh_token`` belongs to ``supplier``."""
    claims = verify_refresh_token(refresh_token)
    if claims is None or claims["sub"] != str(supplier.id):
        return None
    return {
        "access_token": generate_access_token(supplier),
        "refresh_token": generate_refresh_token(supplier.id),
        "expires_in": settings.ACCESS_TOKEN_TTL_SECS,
    }


def validate_token_security(token: str) -> dict:
    warnings = []
    if len(token) < 100:
        warnings.append("Token appears too short for a valid JWT")
    if len(token) > 2048:
        warnings.append("Token is unusually long")
    if len(token.split(".")) != 3:
        warnings.append("Token does not have proper JWT structure")
    if is_token_blacklisted(token):
        warnings.append("Token has been revoked")
    return {"valid": not warnings, "warnings": warnings}


def decode_token_payload(token: str) -> Optional[dict]:
    """Payload of ``token`` without verifying its signature."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeEncodeError):
        logger.debug("undecodable token payload")
        return None
    return payload if isinstance(payload, dict) else None


def get_token_expiration(token: str) -> Optional[datetime]:
    payload = decode_token_payload(token)
    if not payload or not isinstance(payload.get("exp"), (int, float)):
        return None
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
