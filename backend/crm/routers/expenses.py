from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, and_, or_

from crm.db import database, new_id, utcnow, row_to_dict
from crm import models, schemas
from crm.deps import get_current_user
from crm.ownership import (
    INVOICE_SUMMARY, best_effort, contact_summaries, ensure_contact_owned, ensure_invoice_owned, fetch_owned,
)

router = APIRouter(prefix="/expenses", tags=["expenses"])

SORTABLE = {"date", "amount", "name", "category", "created_at"}


def _values(payload: schemas.ExpenseIn) -> dict:
    return payload.model_dump()


async def _check_links(payload: schemas.ExpenseIn, user_id: str) -> None:
    await ensure_contact_owned(payload.contact_id, user_id)
    await ensure_invoice_owned(payload.invoice_id, user_id)


async def _invoice_summary(invoice_id: str, user_id: str) -> Optional[dict]:
    itbl = models.Invoice.__table__
    row = await database.fetch_one(
        select(*(itbl.c[n] for n in INVOICE_SUMMARY))
        .where(and_(itbl.c.id == invoice_id, itbl.c.user_id == user_id))
    )
    return row_to_dict(row, INVOICE_SUMMARY) if row else None


@router.get("/categories")
async def expense_categories(user=Depends(get_current_user)):
    return {"categories": schemas.EXPENSE_CATEGORIES, "payment_modes": schemas.PAYMENT_MODES}


@router.get("")
async def list_expenses(
    category: Optional[str] = None,
    contact_id: Optional[str] = None,
    invoice_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = Query(default=None, description="Case-insensitive match on name, reference, project"),
    sort_by: str = Query("date"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    tbl = models.Expense.__table__
    conds = [tbl.c.user_id == user["id"]]
    if category:
        conds.append(tbl.c.category == category)
    if contact_id:
        conds.append(tbl.c.contact_id == contact_id)
    if invoice_id:
        conds.append(tbl.c.invoice_id == invoice_id)
    if start_date:
        conds.append(tbl.c.date >= start_date)
    if end_date:
        conds.append(tbl.c.date <= end_date)
    if search:
        conds.append(or_(
            tbl.c.name.ilike(f"%{search}%"),
            tbl.c.reference.ilike(f"%{search}%"),
            tbl.c.project.ilike(f"%{search}%"),
        ))
    col = tbl.c[sort_by] if sort_by in SORTABLE else tbl.c.date
    order = col.asc() if sort_order == "asc" else col.desc()
    rows = await database.fetch_all(
        select(tbl).where(and_(*conds)).order_by(order, tbl.c.created_at.desc()).limit(limit).offset(offset)
    )
    expenses = [row_to_dict(r, tbl) for r in rows]
    contacts = await contact_summaries((e["contact_id"] for e in expenses), user["id"])
    return [{**e, "contact": contacts.get(e["contact_id"])} for e in expenses]


@router.post("", status_code=201)
async def create_expense(payload: schemas.ExpenseIn, user=Depends(get_current_user)):
    await _check_links(payload, user["id"])
    tbl = models.Expense.__table__
    now = utcnow()
    eid = new_id()
    await database.execute(
        tbl.insert().values(id=eid, user_id=user["id"], created_at=now, updated_at=now, **_values(payload))
    )
    return await fetch_owned(models.Expense, eid, user["id"], "expense")


@router.get("/{expense_id}")
async def get_expense(expense_id: str, user=Depends(get_current_user)):
    expense = await fetch_owned(models.Expense, expense_id, user["id"], "expense")
    contact = invoice = None
    if expense["contact_id"]:
        found = await best_effort(contact_summaries([expense["contact_id"]], user["id"]), "expense contact")
        contact = (found or {}).get(expense["contact_id"])
    if expense["invoice_id"]:
        invoice = await best_effort(_invoice_summary(expense["invoice_id"], user["id"]), "expense invoice")
    return {**expense, "contact": contact, "invoice": invoice}


@router.put("/{expense_id}")
async def update_expense(expense_id: str, payload: schemas.ExpenseIn, user=Depends(get_current_user)):
    await fetch_owned(models.Expense, expense_id, user["id"], "expense")
    await _check_links(payload, user["id"])
    tbl = models.Expense.__table__
    await database.execute(
        tbl.update().where(and_(tbl.c.id == expense_id, tbl.c.user_id == user["id"]))
        .values(updated_at=utcnow(), **_values(payload))
    )
    return await fetch_owned(models.Expense, expense_id, user["id"], "expense")


@router.delete("/{expense_id}", status_code=204)
async def delete_expense(expense_id: str, user=Depends(get_current_user)):
    await fetch_owned(models.Expense, expense_id, user["id"], "expense")
    tbl = models.Expense.__table__
    await database.execute(tbl.delete().where(and_(tbl.c.id == expense_id, tbl.c.user_id == user["id"])))
    return None
