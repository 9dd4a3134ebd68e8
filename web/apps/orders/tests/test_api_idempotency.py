import pytest

from apps.orders import adapters
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_order_and_status_on_retry(client):
    key = "idem-same-1"
    payload = {"items": [{"sku": "DCB606", "quantity": 2}], "currency": "USD"}

    # first attempt
    r1 = client.post(CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 201
    body1 = r1.json()

    # replay
    r2 = client.post(CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r2.status_code == r1.status_code
    assert r2.json() == body1
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client):
    key = "idem-conflict-1"
    p1 = {"items": [{"sku": "DCB606", "quantity": 2}], "currency": "USD"}
    p2 = {"items": [{"sku": "DCB606", "quantity": 3}], "currency": "USD"}

    r1 = client.post(CREATE_URL, data=p1, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 201

    r2 = client.post(CREATE_URL, data=p2, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_idempotent_replay_preserves_422_status(client, monkeypatch):
    monkeypatch.setattr(adapters.InventoryStub, "reserve", lambda self, items: False)
    key = "idem-422"
    payload = {"items": [{"sku": "DCB615", "quantity": 999}], "currency": "USD"}

    r1 = client.post(CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 422

    r2 = client.post(CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key)
    assert r2.status_code == 422
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
def test_idempotency_key_reaches_payments(client, monkeypatch):
    seen = {}

    from apps.orders import providers

    real = providers.get_payments

    def spy(idempotency_key=None, payment_method=None):
        seen["key"] = idempotency_key
        seen["pm"] = payment_method
        return real(idempotency_key=idempotency_key, payment_method=payment_method)

    monkeypatch.setattr(providers, "get_payments", spy)
    payload = {"items": [{"sku": "DCB606", "quantity": 1}], "payment_method_id": "pm_card_visa"}
    r = client.post(CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="idem-pm")
    assert r.status_code == 201
    assert seen == {"key": "idem-pm", "pm": "pm_card_visa"}
