import httpx
import pytest

from apps.orders.domain import OrderItem
from apps.orders.http_adapters import CircuitBreaker, HttpInventoryClient, _inventory_cb, backoff_sleep
from gateway.exceptions import CircuitOpenError


def test_inventory_retries_on_5xx(monkeypatch, settings):
    # two attempts, no real sleeping
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0

    calls = {"n": 0, "retry_headers": []}

    def fake_request(self, method, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        calls["retry_headers"].append(headers["X-Retry-Count"])
        if calls["n"] == 1:
            return httpx.Response(500, request=httpx.Request(method, url))
        return httpx.Response(200, json={"reserved": True}, request=httpx.Request(method, url))

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    ok = HttpInventoryClient(base_url="http://x").reserve([OrderItem("DCB606", 1)])
    assert ok is True
    assert calls["n"] == 2
    assert calls["retry_headers"] == ["0", "1"]
    assert _inventory_cb.state == "CLOSED"


def test_inventory_exhausted_retries_open_circuit(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1
    monkeypatch.setattr(_inventory_cb, "fail_threshold", 2)

    def fake_request(self, method, url, json=None, headers=None, **kwargs):
        return httpx.Response(503, request=httpx.Request(method, url))

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    client = HttpInventoryClient(base_url="http://x")
    for _ in range(2):
        with pytest.raises(httpx.HTTPStatusError):
            client.reserve([OrderItem("DCB606", 1)])

    assert _inventory_cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        client.reserve([OrderItem("DCB606", 1)])


def test_circuit_half_open_allows_single_probe(monkeypatch):
    cb = CircuitBreaker("test", fail_threshold=1, reset_timeout=10.0)
    now = {"t": 100.0}
    monkeypatch.setattr("apps.orders.http_adapters.time.monotonic", lambda: now["t"])

    cb.on_failure()
    assert cb.state == "OPEN"

    now["t"] += 10.0
    assert cb.before_call() == "HALF_OPEN"
    with pytest.raises(CircuitOpenError) as e:
        cb.before_call()
    assert str(e.value) == "CIRCUIT_HALF_OPEN_BUSY"

    cb.on_success()
    assert cb.state == "CLOSED"


def test_failed_probe_reopens_circuit(monkeypatch):
    cb = CircuitBreaker("test", fail_threshold=3, reset_timeout=5.0)
    now = {"t": 0.0}
    monkeypatch.setattr("apps.orders.http_adapters.time.monotonic", lambda: now["t"])
    for _ in range(3):
        cb.on_failure()
    now["t"] = 6.0
    cb.before_call()
    cb.on_failure()
    assert cb.state == "OPEN"


def test_backoff_is_exponential_and_capped():
    slept = []
    for tries in (1, 2, 3, 4):
        backoff_sleep(tries, 0.15, 0.5, sleep=slept.append)
    assert slept == pytest.approx([0.15, 0.3, 0.5, 0.5])
