"""API error taxonomy.

Domain services raise ``ValueError`` with short upper-case codes and views
translate those codes. Application code that wants to abort a request
directly raises one of the ``ApiError`` subclasses below. Only
``rest_framework.exceptions`` is imported here so authentication classes,
which DRF loads while importing its views module, can use these errors.
"""

import httpx
import stripe
from pydantic import ValidationError
from rest_framework import exceptions, status


class ApiError(exceptions.APIException):
    """Base class for errors that map onto an HTTP status and a code."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "BAD_REQUEST"
    default_code = "bad_request"


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "VALIDATION_ERROR"

    def __init__(self, detail=None, errors=None):
        super().__init__(detail)
        self.errors = errors or []


class AuthenticationFailed(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "AUTHENTICATION_FAILED"


class PermissionDenied(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "ACCESS_FORBIDDEN"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "NOT_FOUND"


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "CONFLICT"


class BusinessRuleViolation(ApiError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "UNPROCESSABLE"


class RateLimited(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "RATE_LIMITED"


class UpstreamUnavailable(ApiError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "UPSTREAM_UNAVAILABLE"


class UpstreamError(RuntimeError):
    """A downstream dependency refused or cannot be used."""


class CircuitOpenError(UpstreamError):
    """Raised by a circuit breaker that refuses a call."""


# Failures of downstream services that surface as 503
UPSTREAM_ERRORS = (httpx.HTTPError, stripe.StripeError, UpstreamError)


def parse_body(dto_cls, data):
    """Validate ``data`` with a pydantic model or raise ``ValidationFailed``."""
    try:
        return dto_cls.model_validate(data)
    except ValidationError as e:
        errors = [{"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise ValidationFailed(errors=errors)


def error_for_code(code: str, statuses: dict, default: int = status.HTTP_400_BAD_REQUEST) -> ApiError:
    """Build an ``ApiError`` carrying a domain error code and its mapped status."""
    exc = ApiError(code)
    exc.status_code = statuses.get(code, default)
    return exc
