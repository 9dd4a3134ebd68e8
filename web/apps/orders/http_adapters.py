"""HTTP inventory client with retries, a circuit breaker and context headers.

This module implements the inventory port over HTTP using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set by
  the gateway middleware.
- A circuit breaker per downstream service to avoid hammering unhealthy
  dependencies, with HALF_OPEN probing after a timeout. The Stripe payments
  client reuses ``CircuitBreaker``.
- Retries with exponential backoff for transport errors and 5xx.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

import httpx
from django.conf import settings

from gateway.exceptions import CircuitOpenError
from gateway.middleware import REQUEST_ID_CTX

from .domain import InventoryPort, OrderItem

logger = logging.getLogger("orders.http")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe; only one probe may be in
      flight; a failed probe reopens the circuit.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check the breaker before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: ``CIRCUIT_OPEN`` or ``CIRCUIT_HALF_OPEN_BUSY``.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


def make_breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


_inventory_cb = make_breaker("inventory")


# ---------------- Helpers ---------------- #

def request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers for outgoing calls: ``X-Request-ID`` plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def retry_policy():
    """Return ``(max_attempts, backoff_base_seconds, max_sleep_seconds)``."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def backoff_sleep(tries: int, base: float, cap: float, sleep: Callable[[float], None] = time.sleep) -> None:
    delay = min(base * (2 ** (tries - 1)), cap)
    if delay > 0:
        sleep(delay)


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient(InventoryPort):
    """HTTP client for the inventory service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.INVENTORY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def reserve(self, items: List[OrderItem]) -> bool:
        """Reserve stock for ``items``.

        - 200 -> the ``reserved`` flag of the body
        - 422 -> False (insufficient stock), not a circuit failure

        Raises:
            httpx.RequestError: transport errors after retries.
            httpx.HTTPStatusError: non-retriable non-2xx responses.
        """
        payload = {"items": [{"sku": i.sku, "quantity": i.quantity} for i in items]}
        resp = self._send("POST", "/reserve", json=payload, business_statuses=(200, 422))
        if resp.status_code == 422:
            return False
        return bool(resp.json().get("reserved", False))

    def release(self, items: List[OrderItem]) -> None:
        payload = {"items": [{"sku": i.sku, "quantity": i.quantity} for i in items]}
        self._send("POST", "/release", json=payload, business_statuses=(200,))

    def stock(self, sku: str) -> int:
        """Available units for ``sku``; unknown SKUs have none."""
        resp = self._send("GET", f"/stock/{sku}", business_statuses=(200, 404))
        if resp.status_code == 404:
            return 0
        return int(resp.json().get("quantity", 0))

    def _send(self, method: str, path: str, json=None, business_statuses=(200,)) -> httpx.Response:
        max_attempts, backoff, cap = retry_policy()
        tries = 0

        state = _inventory_cb.before_call()
        headers = request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, f"{self.base_url}{path}", json=json, headers=headers)
                        if resp.status_code in business_statuses:
                            _inventory_cb.on_success()
                            return resp
                        if not _should_retry(resp, None):
                            _inventory_cb.on_success()  # the service answered; a 4xx is our problem
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        _inventory_cb.on_failure()
                        logger.warning(
                            "inventory call failed",
                            extra={"path": path, "attempts": tries, "error": str(exc) if exc else resp.status_code},
                        )
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    backoff_sleep(tries, backoff, cap)
        finally:
            _inventory_cb.on_finish()
