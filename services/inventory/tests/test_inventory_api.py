import logging

from repo import DEFAULT_STOCK


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "database": "ok"}


def test_reserve_decrements_stock(client, repo):
    r = client.post("/reserve", json={"items": [{"sku": "DCB609", "quantity": 2}, {"sku": "DCB606", "quantity": 1}]})
    assert r.status_code == 200
    assert r.json()["reserved"] is True
    assert repo.get("DCB609") == DEFAULT_STOCK["DCB609"] - 2
    assert repo.get("DCB606") == DEFAULT_STOCK["DCB606"] - 1


def test_reserve_is_all_or_nothing(client, repo):
    r = client.post(
        "/reserve",
        json={"items": [{"sku": "DCB606", "quantity": 1}, {"sku": "DCB615", "quantity": DEFAULT_STOCK["DCB615"] + 1}]},
    )
    assert r.status_code == 422
    assert r.json() == {"reserved": False, "detail": "INSUFFICIENT_STOCK"}
    assert repo.get("DCB606") == DEFAULT_STOCK["DCB606"]


def test_reserve_sums_repeated_skus(client, repo):
    repo.upsert("DCB615", 3)
    lines = [{"sku": "DCB615", "quantity": 2}, {"sku": "DCB615", "quantity": 2}]
    assert client.post("/reserve", json={"items": lines}).status_code == 422
    assert repo.get("DCB615") == 3


def test_reserve_unknown_sku_is_insufficient(client):
    r = client.post("/reserve", json={"items": [{"sku": "DCB999", "quantity": 1}]})
    assert r.status_code == 422


def test_reserve_validates_body(client):
    assert client.post("/reserve", json={"items": []}).status_code == 422
    assert client.post("/reserve", json={"items": [{"sku": "bad sku", "quantity": 1}]}).status_code == 422
    assert client.post("/reserve", json={"items": [{"sku": "DCB606", "quantity": 0}]}).status_code == 422


def test_release_returns_units(client, repo):
    client.post("/reserve", json={"items": [{"sku": "DCB609", "quantity": 5}]})
    r = client.post("/release", json={"items": [{"sku": "DCB609", "quantity": 5}]})
    assert r.status_code == 200
    assert repo.get("DCB609") == DEFAULT_STOCK["DCB609"]


def test_stock_read_and_update(client):
    r = client.get("/stock/dcb606")
    assert r.json() == {"sku": "DCB606", "quantity": DEFAULT_STOCK["DCB606"]}

    r = client.put("/stock/DCB606", json={"quantity": 7})
    assert r.status_code == 200
    assert client.get("/stock/DCB606").json()["quantity"] == 7

    assert client.put("/stock/DCB606", json={"quantity": -1}).status_code == 422
    assert client.get("/stock/NOPE1").status_code == 404
    assert [s["sku"] for s in client.get("/stock").json()] == ["DCB606", "DCB609", "DCB615"]


def test_request_id_is_echoed_and_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="inventory"):
        r = client.get("/health", headers={"X-Request-ID": "req-42", "X-Retry-Count": "1"})
    assert r.headers["X-Request-ID"] == "req-42"
    record = [rec for rec in caplog.records if rec.getMessage() == "request handled"][-1]
    assert record.request_id == "req-42"
    assert record.status == 200
    assert record.retry_count == "1"


def test_init_db_keeps_existing_levels(repo, db_engine):
    from repo import init_db

    repo.upsert("DCB606", 3)
    init_db(db_engine)
    assert repo.get("DCB606") == 3
