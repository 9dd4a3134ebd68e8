"""Integration tests that assert created orders are persisted.

These tests use Django's test client and direct DB assertions to
validate that the HTTP API creates persisted order, item and event rows
with the expected values.
"""

from uuid import UUID

import pytest
from django.db import connection

from apps.orders.models import OrderEvent

CREATE_URL = "/api/orders/"


@pytest.mark.django_db
def test_create_persists_order_row_with_uuid_pk(client):
    """POST a valid order and assert a row is created in the DB."""
    payload = {"items": [{"sku": "DCB606", "quantity": 2}], "currency": "USD"}
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 201
    oid = r.json().get("id")
    UUID(oid)

    with connection.cursor() as cur:
        cur.execute(
            "select status, stage, total_cents, currency, stock_reserved from orders where id = %s",
            [UUID(oid).hex],
        )
        row = cur.fetchone()
    assert row is not None
    status, stage, total_cents, currency, stock_reserved = row
    assert status == "CONFIRMED"
    assert stage == "FULFILLMENT_READY"
    # 2 x 9500 + 8% tax + 2500 shipping
    assert total_cents == 19000 + 1520 + 2500
    assert currency == "USD"
    assert bool(stock_reserved) is True

    with connection.cursor() as cur:
        cur.execute("select sku, quantity, unit_price_cents from order_items where order_id = %s", [UUID(oid).hex])
        assert cur.fetchall() == [("DCB606", 2, 9500)]


@pytest.mark.django_db
def test_create_records_created_event(client):
    payload = {"items": [{"sku": "DCB606", "quantity": 1}], "customer_email": "buyer@example.com"}
    oid = client.post(CREATE_URL, data=payload, content_type="application/json").json()["id"]
    event = OrderEvent.objects.get(order_id=oid)
    assert event.event_type == "created"
    assert event.to_stage == "FULFILLMENT_READY"
