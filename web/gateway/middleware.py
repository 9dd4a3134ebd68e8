"""Gateway middleware: request correlation and API payload limits.

Every incoming request gets a request id, taken from the ``X-Request-Id``
header when the client (or the storefront edge) supplies one, or generated
server-side otherwise. The id is stored on the request, published through
``REQUEST_ID_CTX`` for log records and outbound calls to the inventory
service, and echoed back in the ``X-Request-ID`` response header.

``ApiSizeLimitMiddleware`` rejects oversized bodies on ``/api/`` before any
view parses them. The Stripe webhook route lives under ``/api/`` as well, so
the limit must stay above Stripe's event size.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Assign a per-request identifier and return it on the response.

    Attributes:
        HEADER (str): Incoming header name as found in ``request.META``.
        RESPONSE_HEADER (str): Header added to every response.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Store the request id on the request and in ``REQUEST_ID_CTX``.

        Args:
            request: Django HttpRequest instance.
        """
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Copy the request id onto the response.

        Falls back to the ContextVar when the request object carries no id
        (for example when an earlier middleware short-circuited).

        Args:
            request: Django HttpRequest.
            response: Django HttpResponse to modify.

        Returns:
            The same response with ``X-Request-ID`` set.
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject ``/api/`` requests whose declared body exceeds ``API_MAX_BYTES``."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
