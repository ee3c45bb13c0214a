from __future__ import annotations

import io
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import select, and_, or_, func

from crm.db import database, new_id, utcnow, row_to_dict
from crm import models, schemas
from crm.deps import get_current_user
from crm.errors import NotFound
from crm.ownership import fetch_owned, ensure_contact_owned, contact_summaries
from crm.reporting import as_decimal
from crm.rendering import load_invoice_bundle, contact_summary, public_view, render_pdf

logger = logging.getLogger(__name__)

# Owner routes (bearer auth)
router = APIRouter(prefix="/invoices", tags=["invoices"])
# Share-link routes (no auth); included before ``router`` so ``public`` is never taken for an id
public_router = APIRouter(prefix="/invoices/public", tags=["invoices-public"])

CENT = Decimal("0.01")


def _item_rows(items: List[schemas.InvoiceItemIn], invoice_id: str, now) -> List[dict]:
    return [
        {
            "id": new_id(),
            "invoice_id": invoice_id,
            "position": pos,
            "description": item.description,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "amount": (Decimal(item.quantity) * item.unit_price).quantize(CENT),
            "created_at": now,
            "updated_at": now,
        }
        for pos, item in enumerate(items)
    ]


def _invoice_values(payload: schemas.InvoiceIn, total: Decimal) -> dict:
    return {
        "contact_id": payload.contact_id,
        "invoice_number": payload.invoice_number,
        "issue_date": payload.issue_date,
        "due_date": payload.due_date,
        "status": payload.status.value,
        "total_amount": total,
        "notes": payload.notes,
    }


async def _insert_items(rows: List[dict]) -> None:
    ltbl = models.InvoiceItem.__table__
    for row in rows:
        await database.execute(ltbl.insert().values(**row))


async def _detail(invoice: dict) -> dict:
    bundle = await load_invoice_bundle(invoice)
    return {**invoice, "items": bundle["items"], "contact": contact_summary(bundle["contact"])}


@router.get("")
async def list_invoices(
    status: Optional[schemas.InvoiceStatus] = None,
    contact_id: Optional[str] = None,
    search: Optional[str] = Query(default=None, description="Case-insensitive match on number and notes"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
):
    itbl = models.Invoice.__table__
    conds = [itbl.c.user_id == user["id"]]
    if status:
        conds.append(itbl.c.status == status.value)
    if contact_id:
        conds.append(itbl.c.contact_id == contact_id)
    if search:
        conds.append(or_(itbl.c.invoice_number.ilike(f"%{search}%"), itbl.c.notes.ilike(f"%{search}%")))
    rows = await database.fetch_all(
        select(itbl).where(and_(*conds)).order_by(itbl.c.created_at.desc()).limit(limit).offset(offset)
    )
    invoices = [row_to_dict(r, itbl) for r in rows]
    contacts = await contact_summaries((inv["contact_id"] for inv in invoices), user["id"])
    return [{**inv, "contact": contacts.get(inv["contact_id"])} for inv in invoices]


@router.post("", status_code=201)
async def create_invoice(payload: schemas.InvoiceIn, user: dict = Depends(get_current_user)):
    await ensure_contact_owned(payload.contact_id, user["id"])
    itbl = models.Invoice.__table__
    now = utcnow()
    iid = new_id()
    item_rows = _item_rows(payload.items or [], iid, now)
    if payload.items:
        total = sum((r["amount"] for r in item_rows), Decimal("0"))
    else:
        total = payload.total_amount or Decimal("0")

    async with database.transaction():
        await database.execute(
            itbl.insert().values(
                id=iid, user_id=user["id"], created_at=now, updated_at=now, **_invoice_values(payload, total)
            )
        )
        await _insert_items(item_rows)
    logger.info("invoice %s created with %d items", iid, len(item_rows))
    return await _detail(await fetch_owned(models.Invoice, iid, user["id"], "invoice"))


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str, user: dict = Depends(get_current_user)):
    invoice = await fetch_owned(models.Invoice, invoice_id, user["id"], "invoice")
    return await _detail(invoice)


@router.put("/{invoice_id}")
async def update_invoice(invoice_id: str, payload: schemas.InvoiceIn, user: dict = Depends(get_current_user)):
    await fetch_owned(models.Invoice, invoice_id, user["id"], "invoice")
    await ensure_contact_owned(payload.contact_id, user["id"])
    itbl = models.Invoice.__table__
    ltbl = models.InvoiceItem.__table__
    now = utcnow()

    item_rows = None
    if payload.items is not None:
        item_rows = _item_rows(payload.items, invoice_id, now)
        total = sum((r["amount"] for r in item_rows), Decimal("0"))
    elif payload.total_amount is not None:
        total = payload.total_amount
    else:
        total = as_decimal(await database.fetch_val(
            select(func.coalesce(func.sum(ltbl.c.amount), 0)).where(ltbl.c.invoice_id == invoice_id)
        ))

    # invoice row and item set change together or not at all
    async with database.transaction():
        await database.execute(
            itbl.update().where(and_(itbl.c.id == invoice_id, itbl.c.user_id == user["id"]))
            .values(updated_at=now, **_invoice_values(payload, total))
        )
        if item_rows is not None:
            await database.execute(ltbl.delete().where(ltbl.c.invoice_id == invoice_id))
            await _insert_items(item_rows)
    return await _detail(await fetch_owned(models.Invoice, invoice_id, user["id"], "invoice"))


@router.delete("/{invoice_id}", status_code=204)
async def delete_invoice(invoice_id: str, user: dict = Depends(get_current_user)):
    await fetch_owned(models.Invoice, invoice_id, user["id"], "invoice")
    itbl = models.Invoice.__table__
    ltbl = models.InvoiceItem.__table__
    etbl = models.Expense.__table__
    async with database.transaction():
        await database.execute(ltbl.delete().where(ltbl.c.invoice_id == invoice_id))
        await database.execute(
            etbl.update().where(etbl.c.invoice_id == invoice_id).values(invoice_id=None, updated_at=utcnow())
        )
        await database.execute(itbl.delete().where(and_(itbl.c.id == invoice_id, itbl.c.user_id == user["id"])))
    return None


def _pdf_response(fname: str, pdf_bytes: bytes) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{fname}"'},
    )


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(invoice_id: str, user: dict = Depends(get_current_user)):
    invoice = await fetch_owned(models.Invoice, invoice_id, user["id"], "invoice")
    bundle = await load_invoice_bundle(invoice)
    return _pdf_response(*render_pdf(bundle, public=False))


# --- PUBLIC: /invoices/public/{invoice_id} ---
async def _public_invoice(invoice_id: str) -> dict:
    itbl = models.Invoice.__table__
    row = await database.fetch_one(select(itbl).where(itbl.c.id == invoice_id))
    if not row:
        raise NotFound("invoice")
    return await load_invoice_bundle(row_to_dict(row, itbl))


@public_router.get("/{invoice_id}")
async def public_invoice(invoice_id: str):
    """Shared invoice view; the link itself is the credential."""
    return public_view(await _public_invoice(invoice_id))


@public_router.get("/{invoice_id}/pdf")
async def public_invoice_pdf(invoice_id: str):
    bundle = await _public_invoice(invoice_id)
    return _pdf_response(*render_pdf(bundle, public=True))
