"""Invoice loading and HTML/PDF rendering for owners and public links."""
from __future__ import annotations

import html
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from crm import models, settings
from crm.db import database, row_to_dict
from crm.errors import UpstreamError
from crm.ownership import CONTACT_SUMMARY, best_effort

logger = logging.getLogger(__name__)

PUBLIC_INVOICE_FIELDS = (
    "id", "invoice_number", "issue_date", "due_date", "status", "total_amount", "notes", "created_at",
)
PUBLIC_ITEM_FIELDS = ("description", "quantity", "unit_price", "amount")
PUBLIC_CONTACT_FIELDS = (
    "first_name", "last_name", "email", "phone", "company",
    "address", "city", "state", "zip_code", "country",
)


async def load_items(invoice_id: str) -> List[dict]:
    ltbl = models.InvoiceItem.__table__
    rows = await database.fetch_all(
        select(ltbl)
        .where(ltbl.c.invoice_id == invoice_id)
        .order_by(ltbl.c.created_at.asc(), ltbl.c.position.asc())
    )
    return [row_to_dict(r, ltbl) for r in rows]


async def _load_contact(contact_id: str) -> Optional[dict]:
    ctbl = models.Contact.__table__
    row = await database.fetch_one(select(ctbl).where(ctbl.c.id == contact_id))
    return row_to_dict(row, ctbl) if row else None


async def load_invoice_bundle(invoice: dict) -> Dict[str, Any]:
    """Items plus the linked contact; a missing contact degrades to None."""
    items = await load_items(invoice["id"])
    contact = None
    if invoice.get("contact_id"):
        contact = await best_effort(_load_contact(invoice["contact_id"]), f"contact for invoice {invoice['id']}")
        if contact is None:
            logger.warning("invoice %s rendered without contact", invoice["id"])
    return {"invoice": invoice, "items": items, "contact": contact}


def bill_to_name(contact: Optional[dict]) -> str:
    if not contact:
        return "Unknown Contact"
    name = f"{contact.get('first_name') or ''} {contact.get('last_name') or ''}".strip()
    company = (contact.get("company") or "").strip()
    if name and company:
        return f"{name} - {company}"
    if company:
        return company
    if name:
        return name
    return "Unknown Contact"


def address_lines(contact: Optional[dict]) -> List[str]:
    if not contact:
        return []
    locality = ", ".join(p for p in (contact.get("city"), contact.get("state"), contact.get("zip_code")) if p)
    return [p for p in (contact.get("address"), locality, contact.get("country")) if p]


def contact_summary(contact: Optional[dict]) -> Optional[dict]:
    if not contact:
        return None
    return {k: contact.get(k) for k in CONTACT_SUMMARY}


def public_view(bundle: Dict[str, Any]) -> Dict[str, Any]:
    """Only the fields a share link may expose: no owner id, no contact ids."""
    inv = bundle["invoice"]
    contact = bundle["contact"]
    out = {k: inv.get(k) for k in PUBLIC_INVOICE_FIELDS}
    out["items"] = [{k: item.get(k) for k in PUBLIC_ITEM_FIELDS} for item in bundle["items"]]
    out["contact"] = {k: contact.get(k) or "" for k in PUBLIC_CONTACT_FIELDS} if contact else None
    return out


def _money(value: Any) -> str:
    return f"{Decimal(str(value or 0)):,.2f}"


def _e(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def render_html(bundle: Dict[str, Any], public: bool = False) -> str:
    inv = bundle["invoice"]
    contact = bundle["contact"]
    total = inv.get("total_amount") or 0

    rows_html = "".join(
        f"<tr><td>{_e(item['description'])}</td>"
        f"<td class='num'>{_e(item['quantity'])}</td>"
        f"<td class='num'>{_money(item['unit_price'])}</td>"
        f"<td class='num'>{_money(item['amount'])}</td></tr>"
        for item in bundle["items"]
    )

    bill_to = [f"<div><strong>{_e(bill_to_name(contact))}</strong></div>"]
    if contact:
        if contact.get("email"):
            bill_to.append(f"<div>Email: {_e(contact['email'])}</div>")
        if contact.get("phone"):
            bill_to.append(f"<div>Phone: {_e(contact['phone'])}</div>")
        if public:
            bill_to.extend(f"<div class='address'>{_e(line)}</div>" for line in address_lines(contact))

    notes_html = ""
    if inv.get("notes"):
        notes_html = f"<h3>Notes</h3><p class='notes'>{_e(inv['notes'])}</p>"

    return f"""
<!doctype html>
<html>
<head>
<meta charset="utf-8"/>
<title>Invoice {_e(inv['invoice_number'])}</title>
<style>
@page {{ size: A4; margin: 18mm; }}
body {{ font-family: Arial, sans-serif; font-size: 12px; }}
h1 {{ margin-bottom: 0; }}
.meta {{ float: right; text-align: right; }}
table {{ width:100%; border-collapse: collapse; margin-top: 12px; }}
td, th {{ border: 1px solid #ccc; padding: 6px; }}
th {{ background: #428bca; color: #fff; }}
.num {{ text-align: right; }}
tfoot td {{ font-weight: bold; }}
.notes {{ white-space: pre-wrap; }}
</style>
</head>
<body>
  <div class="meta">
    <div>Invoice #: {_e(inv['invoice_number'])}</div>
    <div>Issue Date: {_e(inv.get('issue_date'))}</div>
    <div>Due Date: {_e(inv.get('due_date'))}</div>
    <div>Status: {_e((inv.get('status') or '').upper())}</div>
  </div>
  <h1>INVOICE</h1>
  <div class="seller">
    <div>{_e(settings.SELLER_NAME)}</div>
    <div>{_e(settings.SELLER_ADDRESS)}</div>
    <div>Email: {_e(settings.SELLER_EMAIL)}</div>
  </div>
  <h3>Bill To</h3>
  <div class="bill-to">{"".join(bill_to)}</div>
  <table>
    <thead>
      <tr><th>Description</th><th>Quantity</th><th>Unit Price</th><th>Amount</th></tr>
    </thead>
    <tbody>
      {rows_html or "<tr><td colspan='4' style='text-align:center'>No items</td></tr>"}
    </tbody>
    <tfoot>
      <tr><td colspan="3" class="num">Subtotal</td><td class="num">{_money(total)}</td></tr>
      <tr><td colspan="3" class="num">Tax</td><td class="num">{_money(0)}</td></tr>
      <tr><td colspan="3" class="num">Total</td><td class="num">{_money(total)}</td></tr>
    </tfoot>
  </table>
  {notes_html}
</body>
</html>
""".strip()


def write_pdf(html_doc: str) -> bytes:
    from weasyprint import HTML
    return HTML(string=html_doc, base_url=".").write_pdf()


def render_pdf(bundle: Dict[str, Any], public: bool = False) -> tuple[str, bytes]:
    inv = bundle["invoice"]
    try:
        pdf_bytes = write_pdf(render_html(bundle, public=public))
    except Exception as e:
        logger.exception("PDF generation failed for invoice %s", inv["id"])
        raise UpstreamError("Failed to generate PDF", details=str(e))
    return f"invoice-{inv['invoice_number']}.pdf", pdf_bytes
