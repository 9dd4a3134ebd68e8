"""Unit tests for the HTTP inventory adapter.

These tests verify that the client maps inventory responses to domain
results and propagates network errors, by monkeypatching
``httpx.Client.request`` with canned ``httpx.Response`` objects.
"""

import httpx
import pytest

from apps.orders.domain import OrderItem
from apps.orders.http_adapters import HttpInventoryClient, request_headers
from gateway.middleware import REQUEST_ID_CTX


def canned(status_code, body=None, calls=None):
    def fake_request(self, method, url, json=None, headers=None, **kw):
        if calls is not None:
            calls.append({"method": method, "url": url, "json": json, "headers": dict(headers or {})})
        return httpx.Response(status_code, json=body or {}, request=httpx.Request(method, url))

    return fake_request


def test_inventory_reserve_ok(monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.Client, "request", canned(200, {"reserved": True}, calls), raising=True)
    client = HttpInventoryClient(base_url="http://inventory:9001/")
    assert client.reserve([OrderItem("DCB609", 2)]) is True
    assert calls[0]["method"] == "POST"
    assert calls[0]["url"] == "http://inventory:9001/reserve"
    assert calls[0]["json"] == {"items": [{"sku": "DCB609", "quantity": 2}]}
    assert calls[0]["headers"]["X-Circuit-State"] == "CLOSED"


def test_inventory_reserve_insufficient_stock(monkeypatch):
    """422 is a business answer: False, not an error."""
    monkeypatch.setattr(httpx.Client, "request", canned(422, {"detail": "INSUFFICIENT_STOCK"}), raising=True)
    assert HttpInventoryClient(base_url="http://x").reserve([OrderItem("DCB615", 99)]) is False


def test_inventory_stock_lookup(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", canned(200, {"sku": "DCB606", "quantity": 42}), raising=True)
    assert HttpInventoryClient(base_url="http://x").stock("DCB606") == 42


def test_inventory_stock_unknown_sku_is_zero(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", canned(404, {"detail": "NOT_FOUND"}), raising=True)
    assert HttpInventoryClient(base_url="http://x").stock("NOPE1") == 0


def test_inventory_release_posts_items(monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.Client, "request", canned(200, {"released": True}, calls), raising=True)
    HttpInventoryClient(base_url="http://x").release([OrderItem("DCB606", 1)])
    assert calls[0]["url"] == "http://x/release"


def test_inventory_client_error_raises_without_retry(monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.Client, "request", canned(400, {"detail": "bad"}, calls), raising=True)
    with pytest.raises(httpx.HTTPStatusError):
        HttpInventoryClient(base_url="http://x").reserve([OrderItem("DCB606", 1)])
    assert len(calls) == 1


def test_inventory_network_error_propagates(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1

    def fake_request(self, method, url, json=None, headers=None, **kw):
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    with pytest.raises(httpx.ConnectError):
        HttpInventoryClient(base_url="http://x").reserve([OrderItem("DCB606", 1)])


def test_request_headers_propagate_request_id():
    token = REQUEST_ID_CTX.set("req-abc")
    try:
        assert request_headers({"X-Retry-Count": "0"}) == {"X-Request-ID": "req-abc", "X-Retry-Count": "0"}
    finally:
        REQUEST_ID_CTX.reset(token)
