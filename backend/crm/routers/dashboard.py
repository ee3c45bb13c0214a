from fastapi import APIRouter, Depends
from sqlalchemy import select, and_, func

from crm.db import database, utcnow, row_to_dict
from crm import models, schemas
from crm.deps import get_current_user
from crm.ownership import contact_summaries
from crm import reporting

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


async def _count(model, user_id: str, *conds) -> int:
    tbl = model.__table__
    n = await database.fetch_val(
        select(func.count()).select_from(tbl).where(and_(tbl.c.user_id == user_id, *conds))
    )
    return int(n or 0)


async def _recent(model, user_id: str, names, limit: int = 5) -> list[dict]:
    tbl = model.__table__
    rows = await database.fetch_all(
        select(*(tbl.c[n] for n in names))
        .where(tbl.c.user_id == user_id)
        .order_by(tbl.c.created_at.desc())
        .limit(limit)
    )
    return [row_to_dict(r, names) for r in rows]


@router.get("/stats")
async def dashboard_stats(user=Depends(get_current_user)):
    uid = user["id"]
    itbl = models.Invoice.__table__
    ttbl = models.Task.__table__

    paid = await database.fetch_all(
        select(itbl.c.total_amount).where(and_(itbl.c.user_id == uid, itbl.c.status == "paid"))
    )
    recent = reporting.recent_activity(
        await _recent(models.Contact, uid, ("id", "first_name", "last_name", "company", "created_at")),
        await _recent(models.Invoice, uid, ("id", "invoice_number", "status", "created_at")),
        await _recent(models.Task, uid, ("id", "title", "status", "created_at")),
    )
    return {
        "contacts_count": await _count(models.Contact, uid),
        "active_invoices_count": await _count(
            models.Invoice, uid, itbl.c.status.in_(reporting.ACTIVE_INVOICE_STATUSES)
        ),
        "pending_tasks_count": await _count(models.Task, uid, ttbl.c.status.in_(reporting.PENDING_TASK_STATUSES)),
        "total_revenue": sum((reporting.as_decimal(r["total_amount"]) for r in paid), reporting.ZERO),
        "recent_activity": recent,
    }


@router.get("/financial")
async def dashboard_financial(period: schemas.Period = schemas.Period.month, user=Depends(get_current_user)):
    uid = user["id"]
    itbl = models.Invoice.__table__
    etbl = models.Expense.__table__
    inv_cols = ("id", "contact_id", "status", "total_amount", "created_at")
    exp_cols = ("amount", "date")

    invoices = [
        row_to_dict(r, inv_cols)
        for r in await database.fetch_all(select(*(itbl.c[n] for n in inv_cols)).where(itbl.c.user_id == uid))
    ]
    expenses = [
        row_to_dict(r, exp_cols)
        for r in await database.fetch_all(select(*(etbl.c[n] for n in exp_cols)).where(etbl.c.user_id == uid))
    ]
    paid_contacts = (inv["contact_id"] for inv in invoices if inv["status"] in reporting.REVENUE_STATUSES)
    contacts = await contact_summaries(paid_contacts, uid)
    return reporting.financial_summary(invoices, expenses, contacts, today=utcnow().date(), period=period.value)
