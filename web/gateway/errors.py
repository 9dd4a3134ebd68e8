"""The DRF exception handler.

Whatever the source of an error, the client always receives
``{"detail": ...}`` with a matching status code; unexpected exceptions
become 500 ``INTERNAL_ERROR`` and are logged with their traceback.
"""

import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import UPSTREAM_ERRORS, ValidationFailed

logger = logging.getLogger("gateway.errors")


def api_exception_handler(exc, context):
    """Render every API exception as ``{"detail": ...}``.

    DRF's own handler deals with ``APIException`` subclasses (including the
    ``ApiError`` family, throttling and authentication failures). Anything it
    does not recognise is logged and turned into a generic 500 so internals
    never leak to clients.

    Args:
        exc: The raised exception.
        context: DRF handler context (contains the view and request).

    Returns:
        Response: The error response.
    """
    response = exception_handler(exc, context)
    if response is not None:
        if isinstance(exc, exceptions.Throttled):
            response.data = {"detail": "RATE_LIMITED"}
        elif not isinstance(response.data, dict) or "detail" not in response.data:
            response.data = {"detail": response.data}
        if isinstance(exc, ValidationFailed) and exc.errors:
            response.data["errors"] = exc.errors
        return response

    view = context.get("view")
    if isinstance(exc, UPSTREAM_ERRORS):
        logger.warning(
            "upstream failure",
            extra={"view": type(view).__name__ if view else None, "error": str(exc)},
        )
        return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    logger.exception(
        "unhandled api error",
        extra={"view": type(view).__name__ if view else None},
    )
    return Response({"detail": "INTERNAL_ERROR"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
