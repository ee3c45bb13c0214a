import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, and_, or_

from crm.db import database, new_id, utcnow, row_to_dict
from crm import models, schemas
from crm.deps import get_current_user
from crm.errors import Forbidden
from crm.ownership import fetch_owned

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])

SEARCH_COLUMNS = ("first_name", "last_name", "email", "company")


def _values(payload: schemas.ContactIn) -> dict:
    data = payload.model_dump()
    data["email"] = payload.email or ""
    data["status"] = payload.status.value
    return data


async def delete_contacts(contact_ids: List[str], user_id: str) -> None:
    """Delete contacts with their invoices; tasks and expenses are detached."""
    ctbl = models.Contact.__table__
    itbl = models.Invoice.__table__
    ltbl = models.InvoiceItem.__table__
    etbl = models.Expense.__table__
    ttbl = models.Task.__table__
    now = utcnow()
    async with database.transaction():
        invoice_ids = select(itbl.c.id).where(
            and_(itbl.c.user_id == user_id, itbl.c.contact_id.in_(contact_ids))
        )
        await database.execute(ltbl.delete().where(ltbl.c.invoice_id.in_(invoice_ids)))
        await database.execute(
            etbl.update().where(and_(etbl.c.user_id == user_id, etbl.c.invoice_id.in_(invoice_ids)))
            .values(invoice_id=None, updated_at=now)
        )
        await database.execute(
            itbl.delete().where(and_(itbl.c.user_id == user_id, itbl.c.contact_id.in_(contact_ids)))
        )
        await database.execute(
            etbl.update().where(and_(etbl.c.user_id == user_id, etbl.c.contact_id.in_(contact_ids)))
            .values(contact_id=None, updated_at=now)
        )
        await database.execute(
            ttbl.update().where(and_(ttbl.c.user_id == user_id, ttbl.c.contact_id.in_(contact_ids)))
            .values(contact_id=None, updated_at=now)
        )
        await database.execute(
            ctbl.delete().where(and_(ctbl.c.user_id == user_id, ctbl.c.id.in_(contact_ids)))
        )


@router.get("", response_model=list[schemas.ContactOut])
async def list_contacts(
    status: schemas.ContactStatus | None = None,
    search: str | None = Query(default=None, description="Case-insensitive match on name, email, company"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    tbl = models.Contact.__table__
    conds = [tbl.c.user_id == user["id"]]
    if status:
        conds.append(tbl.c.status == status.value)
    if search:
        conds.append(or_(*(tbl.c[name].ilike(f"%{search}%") for name in SEARCH_COLUMNS)))
    stmt = select(tbl).where(and_(*conds)).order_by(tbl.c.created_at.desc()).limit(limit).offset(offset)
    rows = await database.fetch_all(stmt)
    return [row_to_dict(r, tbl) for r in rows]


@router.post("", response_model=schemas.ContactOut, status_code=201)
async def create_contact(payload: schemas.ContactIn, user=Depends(get_current_user)):
    tbl = models.Contact.__table__
    now = utcnow()
    cid = new_id()
    await database.execute(
        tbl.insert().values(id=cid, user_id=user["id"], created_at=now, updated_at=now, **_values(payload))
    )
    logger.info("contact %s created", cid)
    return await fetch_owned(models.Contact, cid, user["id"], "contact")


@router.post("/bulk")
async def bulk_contacts(payload: schemas.BulkContactsIn, user=Depends(get_current_user)):
    tbl = models.Contact.__table__
    ids = list(dict.fromkeys(payload.contact_ids))
    rows = await database.fetch_all(
        select(tbl.c.id).where(and_(tbl.c.user_id == user["id"], tbl.c.id.in_(ids)))
    )
    owned = {r["id"] for r in rows}
    invalid = [cid for cid in ids if cid not in owned]
    if invalid:
        raise Forbidden(
            "Some contacts do not exist or do not belong to you",
            invalid_contact_ids=invalid,
        )

    action = payload.action
    if action is schemas.BulkAction.delete:
        await delete_contacts(ids, user["id"])
    else:
        status = "active" if action is schemas.BulkAction.activate else "inactive"
        await database.execute(
            tbl.update().where(and_(tbl.c.user_id == user["id"], tbl.c.id.in_(ids)))
            .values(status=status, updated_at=utcnow())
        )
    logger.info("bulk %s on %d contacts", action.value, len(ids))
    return {
        "message": f"Successfully performed {action.value} on {len(ids)} contacts",
        "affected_ids": ids,
    }


@router.get("/{contact_id}", response_model=schemas.ContactOut)
async def get_contact(contact_id: str, user=Depends(get_current_user)):
    return await fetch_owned(models.Contact, contact_id, user["id"], "contact")


@router.put("/{contact_id}", response_model=schemas.ContactOut)
async def update_contact(contact_id: str, payload: schemas.ContactIn, user=Depends(get_current_user)):
    tbl = models.Contact.__table__
    await fetch_owned(models.Contact, contact_id, user["id"], "contact")
    await database.execute(
        tbl.update().where(and_(tbl.c.id == contact_id, tbl.c.user_id == user["id"]))
        .values(updated_at=utcnow(), **_values(payload))
    )
    return await fetch_owned(models.Contact, contact_id, user["id"], "contact")


@router.delete("/{contact_id}", status_code=204)
async def delete_contact(contact_id: str, user=Depends(get_current_user)):
    await fetch_owned(models.Contact, contact_id, user["id"], "contact")
    await delete_contacts([contact_id], user["id"])
    return None
