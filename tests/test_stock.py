import pytest

from conftest import auth_headers


@pytest.fixture
def product(client, clinic):
    category = client.post("/api/product-categories", json={"name": "Materials"}, headers=clinic.headers).json()
    return client.post(
        "/api/products",
        json={
            "category_id": category["id"],
            "name": "Anesthetic",
            "unit": "box",
            "unit_price": "45.00",
            "current_stock": "5",
            "minimum_stock": "3",
        },
        headers=clinic.headers,
    ).json()


def _move(client, clinic, product, kind, quantity):
    return client.post(
        "/api/stock-movements",
        json={"product_id": product["id"], "type": kind, "quantity": quantity},
        headers=clinic.headers,
    )


def test_in_out_adjustment(client, clinic, product):
    r = _move(client, clinic, product, "in", "10")
    assert r.status_code == 201
    assert r.json()["current_stock"] == 15

    assert _move(client, clinic, product, "out", "4").json()["current_stock"] == 11
    assert _move(client, clinic, product, "adjustment", "7").json()["current_stock"] == 7

    movements = client.get("/api/stock-movements", params={"product_id": product["id"]}, headers=clinic.headers).json()
    assert [m["type"] for m in movements] == ["adjustment", "out", "in"]
    assert movements[0]["product_name"] == "Anesthetic"


def test_zero_quantity_rejected_except_adjustment(client, clinic, product):
    assert _move(client, clinic, product, "in", "0").status_code == 400
    r = _move(client, clinic, product, "adjustment", "0")
    assert r.status_code == 201
    assert r.json()["current_stock"] == 0


def test_low_stock(client, clinic, product):
    assert client.get("/api/products/low-stock", headers=clinic.headers).json() == []

    _move(client, clinic, product, "out", "2")
    low = client.get("/api/products/low-stock", headers=clinic.headers).json()
    assert [p["id"] for p in low] == [product["id"]]
    assert low[0]["low_stock"] is True


def test_delete_product_with_movements_deactivates(client, clinic, product):
    _move(client, clinic, product, "in", "1")
    assert client.delete(f"/api/products/{product['id']}", headers=clinic.headers).status_code == 200

    after = client.get(f"/api/products/{product['id']}", headers=clinic.headers)
    assert after.status_code == 200
    assert after.json()["is_active"] is False


def test_delete_unused_product(client, clinic, product):
    assert client.delete(f"/api/products/{product['id']}", headers=clinic.headers).status_code == 200
    assert client.get(f"/api/products/{product['id']}", headers=clinic.headers).status_code == 404


def test_category_with_products_cannot_be_deleted(client, clinic, product):
    r = client.delete(f"/api/product-categories/{product['category_id']}", headers=clinic.headers)
    assert r.status_code == 409


def test_products_are_tenant_scoped(client, clinic, product, make_company, make_user):
    other_admin = make_user("otheradmin", make_company(name="Other", email="o@other.com"))
    headers = auth_headers(other_admin)
    assert client.get("/api/products", headers=headers).json() == []
    assert client.get(f"/api/products/{product['id']}", headers=headers).status_code == 404

    r = client.post(
        "/api/stock-movements",
        json={"product_id": product["id"], "type": "in", "quantity": "1"},
        headers=headers,
    )
    assert r.status_code == 404
