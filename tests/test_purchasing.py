import pytest

from odontosync.db import clinic_today
from odontosync.services.purchasing import next_document_number


def test_next_document_number():
    assert next_document_number([], "PO", 2026) == "PO-2026-0001"
    assert next_document_number(["PO-2026-0001", "PO-2026-0007", "PO-2025-0042"], "PO", 2026) == "PO-2026-0008"
    assert next_document_number(["PO-2026-abc", "REC-2026-0003", None], "PO", 2026) == "PO-2026-0001"


@pytest.fixture
def supplier(client, clinic):
    return client.post(
        "/api/suppliers", json={"name": "Dental Supply Co", "email": "sales@dsc.com"}, headers=clinic.headers
    ).json()


def _order(client, clinic, supplier, **extra):
    payload = {
        "supplier_id": supplier["id"],
        "items": [
            {"description": "Gloves", "quantity": "10", "unit_price": "2.50"},
            {"description": "Masks", "quantity": "4", "unit_price": "10.00"},
        ],
    }
    payload.update(extra)
    return client.post("/api/purchase-orders", json=payload, headers=clinic.headers)


def test_order_numbering_and_total(client, clinic, supplier):
    year = clinic_today().year
    first = _order(client, clinic, supplier)
    assert first.status_code == 201
    body = first.json()
    assert body["order_number"] == f"PO-{year}-0001"
    assert body["total_amount"] == 65
    assert body["status"] == "draft"
    assert body["supplier"]["name"] == "Dental Supply Co"
    assert [i["total_price"] for i in body["items"]] == [25, 40]

    second = _order(client, clinic, supplier).json()
    assert second["order_number"] == f"PO-{year}-0002"


def test_installment_amount(client, clinic, supplier):
    body = _order(client, clinic, supplier, installments=2).json()
    assert body["installment_amount"] == 32.5


def test_order_creates_pending_receiving(client, clinic, supplier):
    order = _order(client, clinic, supplier).json()
    receivings = client.get("/api/receivings", headers=clinic.headers).json()
    assert len(receivings) == 1
    rec = receivings[0]
    assert rec["receiving_number"] == f"REC-{clinic_today().year}-0001"
    assert rec["status"] == "pending"
    assert rec["purchase_order"]["id"] == order["id"]
    assert [i["quantity_ordered"] for i in rec["items"]] == [10, 4]
    assert all(i["quantity_received"] == 0 for i in rec["items"])


def test_partial_then_received(client, clinic, supplier):
    order = _order(client, clinic, supplier).json()
    rec = client.get("/api/receivings", headers=clinic.headers).json()[0]
    gloves = rec["items"][0]

    r = client.put(
        f"/api/receivings/{rec['id']}/status",
        json={"status": "partial", "items": [{"id": gloves["id"], "quantity_received": "6"}]},
        headers=clinic.headers,
    )
    assert r.status_code == 200
    assert r.json()["items"][0]["quantity_received"] == 6
    assert r.json()["receiving_date"] is None
    assert client.get(f"/api/purchase-orders/{order['id']}", headers=clinic.headers).json()["status"] == "partial"

    r = client.put(f"/api/receivings/{rec['id']}/status", json={"status": "received"}, headers=clinic.headers)
    assert r.json()["receiving_date"] == clinic_today().isoformat()
    assert client.get(f"/api/purchase-orders/{order['id']}", headers=clinic.headers).json()["status"] == "received"


def test_unknown_receiving_item_is_404(client, clinic, supplier):
    _order(client, clinic, supplier)
    rec = client.get("/api/receivings", headers=clinic.headers).json()[0]
    r = client.put(
        f"/api/receivings/{rec['id']}/status",
        json={"status": "partial", "items": [{"id": 9999, "quantity_received": "1"}]},
        headers=clinic.headers,
    )
    assert r.status_code == 404


def test_update_order_replaces_items(client, clinic, supplier):
    order = _order(client, clinic, supplier).json()
    r = client.put(
        f"/api/purchase-orders/{order['id']}",
        json={"items": [{"description": "Burs", "quantity": "3", "unit_price": "20.00"}], "status": "sent"},
        headers=clinic.headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert [i["description"] for i in body["items"]] == ["Burs"]
    assert body["total_amount"] == 60
    assert body["status"] == "sent"


def test_delete_order_removes_receivings(client, clinic, supplier):
    order = _order(client, clinic, supplier).json()
    assert client.delete(f"/api/purchase-orders/{order['id']}", headers=clinic.headers).status_code == 200
    assert client.get("/api/receivings", headers=clinic.headers).json() == []
    assert client.get(f"/api/purchase-orders/{order['id']}", headers=clinic.headers).status_code == 404


def test_supplier_with_orders_cannot_be_deleted(client, clinic, supplier):
    _order(client, clinic, supplier)
    assert client.delete(f"/api/suppliers/{supplier['id']}", headers=clinic.headers).status_code == 409


def test_order_needs_items(client, clinic, supplier):
    r = client.post(
        "/api/purchase-orders", json={"supplier_id": supplier["id"], "items": []}, headers=clinic.headers
    )
    assert r.status_code == 422
