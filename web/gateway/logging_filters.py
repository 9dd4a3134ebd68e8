"""Logging filter that stamps records with the current request id.

The JSON formatter configured in ``config.settings.LOGGING`` references
``%(request_id)s``; this filter guarantees the attribute exists on every
record, including records emitted outside a request (management commands,
gunicorn boot), where a hyphen is used.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` from ``REQUEST_ID_CTX`` to log records."""

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
