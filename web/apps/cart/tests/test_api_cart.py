import pytest

from apps.cart.models import Cart


def new_cart(client):
    r = client.post("/api/cart/", data={"owner_id": "cust-9"}, content_type="application/json")
    assert r.status_code == 201
    return r.json()["id"]


def add(client, cart_id, sku, quantity):
    return client.post(
        f"/api/cart/{cart_id}/items/", data={"sku": sku, "quantity": quantity}, content_type="application/json"
    )


@pytest.mark.django_db
def test_cart_round_trip(client):
    cart_id = new_cart(client)
    r = add(client, cart_id, "DCB609", 2)
    assert r.status_code == 201
    body = r.json()
    assert body["subtotal_cents"] == 25000
    assert body["total_cents"] == 29500
    assert body["amount_for_free_shipping_cents"] == 25000

    r = client.patch(f"/api/cart/{cart_id}/items/DCB609/", data={"quantity": 4}, content_type="application/json")
    assert r.status_code == 200
    assert r.json()["shipping_cents"] == 0

    r = client.get(f"/api/cart/{cart_id}/")
    assert r.json()["item_count"] == 4

    r = client.delete(f"/api/cart/{cart_id}/items/DCB609/")
    assert r.status_code == 200
    assert r.json()["items"] == []


@pytest.mark.django_db
def test_clear_cart(client):
    cart_id = new_cart(client)
    add(client, cart_id, "DCB606", 1)
    add(client, cart_id, "DCB615", 1)
    r = client.delete(f"/api/cart/{cart_id}/")
    assert r.status_code == 200
    assert r.json()["items"] == []
    assert r.json()["subtotal_cents"] == 0


@pytest.mark.django_db
def test_cart_errors(client):
    cart_id = new_cart(client)
    assert add(client, cart_id, "DCB999", 1).status_code == 404
    assert add(client, cart_id, "DCB606", 0).status_code == 400
    r = add(client, cart_id, "DCB606", 51)
    assert r.status_code == 422
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert client.get("/api/cart/00000000-0000-0000-0000-000000000000/").status_code == 404
    r = client.patch(f"/api/cart/{cart_id}/items/DCB615/", data={"quantity": 1}, content_type="application/json")
    assert r.json()["detail"] == "ITEM_NOT_FOUND"


@pytest.mark.django_db
def test_checked_out_cart_rejects_changes(client):
    cart_id = new_cart(client)
    Cart.objects.filter(id=cart_id).update(status=Cart.Status.CHECKED_OUT)
    r = add(client, cart_id, "DCB606", 1)
    assert r.status_code == 409
    assert r.json()["detail"] == "CART_CLOSED"
