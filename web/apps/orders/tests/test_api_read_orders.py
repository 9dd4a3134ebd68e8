from uuid import uuid4

import pytest

from apps.orders.models import OrderItemModel, OrderModel

DETAIL_URL = "/api/orders/{oid}/"
LIST_URL = "/api/orders/"


@pytest.mark.django_db
def test_get_order_by_id_returns_200_and_payload(client):
    o = OrderModel.objects.create(
        id=uuid4(),
        status="CONFIRMED",
        stage="FULFILLMENT_READY",
        total_cents=12500,
        currency="USD",
        transaction_id="pi_abc123",
    )
    OrderItemModel.objects.create(order=o, sku="DCB609", quantity=1, unit_price_cents=12500)
    r = client.get(DETAIL_URL.format(oid=str(o.id)))
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == str(o.id)
    assert body["status"] == "CONFIRMED"
    assert body["amount_cents"] == 12500
    assert body["currency"] == "USD"
    assert body["transaction_id"] == "pi_abc123"
    assert body["items"][0]["sku"] == "DCB609"


@pytest.mark.django_db
def test_get_order_not_found_returns_404(client):
    r = client.get(DETAIL_URL.format(oid=str(uuid4())))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_list_orders_returns_paginated_array(client):
    OrderModel.objects.create(id=uuid4(), status="CONFIRMED", stage="SHIPPED", total_cents=1500)
    OrderModel.objects.create(id=uuid4(), status="CREATED", stage="DRAFT", total_cents=9900)
    r = client.get(LIST_URL)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert all({"id", "status", "stage", "amount_cents", "currency"} <= set(x.keys()) for x in body["results"])


@pytest.mark.django_db
def test_list_orders_filters_by_stage_and_clamps_page_size(client):
    for _ in range(3):
        OrderModel.objects.create(status="CREATED", stage="DRAFT", total_cents=100)
    OrderModel.objects.create(status="CONFIRMED", stage="SHIPPED", total_cents=100)

    body = client.get(LIST_URL, {"stage": "draft", "page_size": 500}).json()
    assert body["count"] == 3
    assert body["page_size"] == 100
    assert {o["stage"] for o in body["results"]} == {"DRAFT"}


@pytest.mark.django_db
def test_list_orders_rejects_bad_pagination(client):
    r = client.get(LIST_URL, {"page_size": "many"})
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAGINATION"


@pytest.mark.django_db
def test_orders_have_no_sequence_counter_or_ping_route(client):
    assert "internal_id" not in {f.name for f in OrderModel._meta.get_fields()}
    assert OrderModel._meta.ordering == ["-created_at"]
    assert client.get("/api/orders/ping/").status_code == 404
