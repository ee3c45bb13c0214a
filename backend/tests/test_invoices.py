import pytest

from crm.routers import invoices as invoice_routes
from conftest import make_contact, make_invoice

pytestmark = pytest.mark.anyio


async def test_create_computes_item_amounts_and_total(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(
        client, alice, contact["id"],
        total_amount=999,
        items=[
            {"description": "Design", "quantity": 3, "unit_price": 12.50},
            {"description": "Hosting", "quantity": 1, "unit_price": "20.00"},
        ],
    )
    assert inv["status"] == "draft"
    assert inv["total_amount"] == 57.5
    assert [i["amount"] for i in inv["items"]] == [37.5, 20.0]
    assert [i["description"] for i in inv["items"]] == ["Design", "Hosting"]
    assert inv["contact"]["id"] == contact["id"]
    assert inv["contact"]["company"] == "Analytical Engines"


async def test_create_without_items_uses_total_amount(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(client, alice, contact["id"], total_amount=150)
    assert inv["total_amount"] == 150
    assert inv["items"] == []


async def test_create_requires_fields(client, alice):
    contact = await make_contact(client, alice)
    r = await client.post(
        "/invoices",
        json={"contact_id": contact["id"], "invoice_number": "INV-1", "issue_date": "2026-10-01"},
        headers=alice,
    )
    assert r.status_code == 400
    assert r.json() == {"error": "due_date is required", "field": "due_date"}


async def test_create_rejects_unknown_status(client, alice):
    contact = await make_contact(client, alice)
    r = await client.post(
        "/invoices",
        json={"contact_id": contact["id"], "invoice_number": "INV-1", "issue_date": "2026-10-01",
              "due_date": "2026-10-31", "status": "unpaid"},
        headers=alice,
    )
    assert r.status_code == 400
    assert r.json()["field"] == "status"


async def test_create_for_other_users_contact_is_404(client, alice, bob):
    contact = await make_contact(client, bob)
    r = await client.post(
        "/invoices",
        json={"contact_id": contact["id"], "invoice_number": "INV-1", "issue_date": "2026-10-01",
              "due_date": "2026-10-31"},
        headers=alice,
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Contact not found"}


async def test_update_replaces_items(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(
        client, alice, contact["id"],
        items=[
            {"description": "Old A", "quantity": 1, "unit_price": 1},
            {"description": "Old B", "quantity": 2, "unit_price": 2},
        ],
    )
    body = {
        "contact_id": contact["id"],
        "invoice_number": "INV-001",
        "issue_date": "2026-10-01",
        "due_date": "2026-10-31",
        "status": "sent",
        "items": [{"description": "Design", "quantity": 3, "unit_price": 12.50}],
    }
    r = await client.put(f"/invoices/{inv['id']}", json=body, headers=alice)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["status"] == "sent"
    assert len(data["items"]) == 1
    assert data["items"][0]["description"] == "Design"
    assert data["items"][0]["amount"] == 37.5
    assert data["total_amount"] == 37.5

    r = await client.get(f"/invoices/{inv['id']}", headers=alice)
    assert [i["description"] for i in r.json()["items"]] == ["Design"]


async def test_update_without_items_keeps_items_and_their_total(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(
        client, alice, contact["id"], items=[{"description": "Work", "quantity": 4, "unit_price": 25}]
    )
    body = {
        "contact_id": contact["id"],
        "invoice_number": "INV-002",
        "issue_date": "2026-10-01",
        "due_date": "2026-11-30",
        "status": "paid",
    }
    r = await client.put(f"/invoices/{inv['id']}", json=body, headers=alice)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["invoice_number"] == "INV-002"
    assert data["due_date"] == "2026-11-30"
    assert data["total_amount"] == 100
    assert len(data["items"]) == 1


async def test_update_with_empty_items_clears_them(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(
        client, alice, contact["id"], items=[{"description": "Work", "quantity": 1, "unit_price": 5}]
    )
    body = {
        "contact_id": contact["id"],
        "invoice_number": "INV-001",
        "issue_date": "2026-10-01",
        "due_date": "2026-10-31",
        "items": [],
    }
    r = await client.put(f"/invoices/{inv['id']}", json=body, headers=alice)
    assert r.status_code == 200
    assert r.json()["items"] == []
    assert r.json()["total_amount"] == 0


async def test_list_includes_contact_and_filters(client, alice, bob):
    contact = await make_contact(client, alice)
    await make_invoice(client, alice, contact["id"], invoice_number="A-1", status="paid", total_amount=10)
    await make_invoice(client, alice, contact["id"], invoice_number="A-2", status="draft", total_amount=20)
    other = await make_contact(client, bob)
    await make_invoice(client, bob, other["id"], invoice_number="B-1", total_amount=30)

    r = await client.get("/invoices", headers=alice)
    assert r.status_code == 200
    rows = r.json()
    assert {i["invoice_number"] for i in rows} == {"A-1", "A-2"}
    assert all(i["contact"]["id"] == contact["id"] for i in rows)

    r = await client.get("/invoices", params={"status": "paid"}, headers=alice)
    assert [i["invoice_number"] for i in r.json()] == ["A-1"]


async def test_other_users_invoice_is_not_found(client, alice, bob):
    contact = await make_contact(client, alice)
    inv = await make_invoice(client, alice, contact["id"], total_amount=10)

    r = await client.get(f"/invoices/{inv['id']}", headers=bob)
    assert r.status_code == 404
    assert r.json() == {"error": "Invoice not found"}
    r = await client.delete(f"/invoices/{inv['id']}", headers=bob)
    assert r.status_code == 404


async def test_delete_invoice(client, alice):
    contact = await make_contact(client, alice)
    inv = await make_invoice(client, alice, contact["id"], items=[{"description": "W", "quantity": 1, "unit_price": 1}])

    r = await client.delete(f"/invoices/{inv['id']}", headers=alice)
    assert r.status_code == 204
    assert (await client.get(f"/invoices/{inv['id']}", headers=alice)).status_code == 404
    assert (await client.get(f"/invoices/public/{inv['id']}")).status_code == 404


async def test_failed_item_replacement_keeps_original_invoice(client, alice, monkeypatch):
    contact = await make_contact(client, alice)
    inv = await make_invoice(
        client, alice, contact["id"], items=[{"description": "Keep", "quantity": 2, "unit_price": 10}]
    )

    async def _fail(rows):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(invoice_routes, "_insert_items", _fail)
    body = {
        "contact_id": contact["id"],
        "invoice_number": "INV-CHANGED",
        "issue_date": "2026-10-01",
        "due_date": "2026-10-31",
        "status": "paid",
        "items": [{"description": "Replace", "quantity": 1, "unit_price": 1}],
    }
    r = await client.put(f"/invoices/{inv['id']}", json=body, headers=alice)
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error", "details": "insert failed"}

    r = await client.get(f"/invoices/{inv['id']}", headers=alice)
    assert r.status_code == 200
    data = r.json()
    assert data["invoice_number"] == "INV-001"
    assert data["status"] == "draft"
    assert data["total_amount"] == 20
    assert [i["description"] for i in data["items"]] == ["Keep"]
