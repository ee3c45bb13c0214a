from datetime import date, datetime
from decimal import Decimal

import pytest

from crm import rendering
from crm.errors import UpstreamError


def _bundle(contact=None, notes=""):
    invoice = {
        "id": "inv-1", "user_id": "u1", "contact_id": "c1", "invoice_number": "INV-9",
        "issue_date": date(2026, 10, 1), "due_date": date(2026, 10, 31), "status": "sent",
        "total_amount": Decimal("1250.00"), "notes": notes, "created_at": datetime(2026, 10, 1),
    }
    items = [{"id": "l1", "invoice_id": "inv-1", "description": "Consulting <b>", "quantity": 5,
              "unit_price": Decimal("250.00"), "amount": Decimal("1250.00")}]
    return {"invoice": invoice, "items": items, "contact": contact}


CONTACT = {
    "id": "c1", "user_id": "u1", "first_name": "Ada", "last_name": "Lovelace", "company": "Engines Ltd",
    "email": "ada@example.com", "phone": "555-0100", "address": "12 Crescent Rd", "city": "London",
    "state": "", "zip_code": "NW1", "country": "UK",
}


@pytest.mark.parametrize("contact,expected", [
    ({"first_name": "Ada", "last_name": "Lovelace", "company": "Engines Ltd"}, "Ada Lovelace - Engines Ltd"),
    ({"first_name": "", "last_name": "", "company": "Engines Ltd"}, "Engines Ltd"),
    ({"first_name": "Ada", "last_name": "", "company": ""}, "Ada"),
    ({"first_name": "", "last_name": "", "company": ""}, "Unknown Contact"),
    (None, "Unknown Contact"),
])
def test_bill_to_name(contact, expected):
    assert rendering.bill_to_name(contact) == expected


def test_address_lines_skip_blanks():
    assert rendering.address_lines(CONTACT) == ["12 Crescent Rd", "London, NW1", "UK"]
    assert rendering.address_lines({"address": "", "city": "", "country": ""}) == []


def test_owner_html_has_no_address():
    out = rendering.render_html(_bundle(CONTACT), public=False)
    assert "INVOICE" in out
    assert "Ada Lovelace - Engines Ltd" in out
    assert "Email: ada@example.com" in out
    assert "12 Crescent Rd" not in out
    assert "Subtotal" in out and "Tax" in out
    assert "1,250.00" in out
    assert "Notes" not in out


def test_public_html_has_address_and_notes():
    out = rendering.render_html(_bundle(CONTACT, notes="Pay within 30 days"), public=True)
    assert "12 Crescent Rd" in out
    assert "London, NW1" in out
    assert "Pay within 30 days" in out


def test_html_escapes_values():
    out = rendering.render_html(_bundle(CONTACT), public=False)
    assert "Consulting &lt;b&gt;" in out
    assert "Consulting <b>" not in out


def test_missing_contact_renders_placeholder():
    out = rendering.render_html(_bundle(None), public=True)
    assert "Unknown Contact" in out


def test_public_view_strips_ids():
    view = rendering.public_view(_bundle(CONTACT))
    assert "user_id" not in view and "contact_id" not in view
    assert view["items"] == [{"description": "Consulting <b>", "quantity": 5,
                              "unit_price": Decimal("250.00"), "amount": Decimal("1250.00")}]
    assert "id" not in view["contact"] and "user_id" not in view["contact"]
    assert view["contact"]["state"] == ""
    assert rendering.public_view(_bundle(None))["contact"] is None


def test_render_pdf_names_file(monkeypatch):
    monkeypatch.setattr(rendering, "write_pdf", lambda html_doc: b"%PDF-fake")
    name, data = rendering.render_pdf(_bundle(CONTACT))
    assert name == "invoice-INV-9.pdf"
    assert data == b"%PDF-fake"


def test_render_pdf_wraps_failures(monkeypatch):
    def _fail(html_doc):
        raise OSError("no fonts")

    monkeypatch.setattr(rendering, "write_pdf", _fail)
    with pytest.raises(UpstreamError) as exc:
        rendering.render_pdf(_bundle(CONTACT))
    assert exc.value.status_code == 500
    assert exc.value.details == "no fonts"
