"""Owner-filtered lookups shared by the resource routers."""
import logging
from typing import Iterable, Optional

from sqlalchemy import select, and_

from crm import models
from crm.db import database, row_to_dict
from crm.errors import NotFound

logger = logging.getLogger(__name__)

CONTACT_SUMMARY = ("id", "first_name", "last_name", "email", "phone", "company")
INVOICE_SUMMARY = ("id", "invoice_number", "total_amount", "status")


async def fetch_owned(model, row_id: str, user_id: str, resource: str) -> dict:
    """Row ``row_id`` of ``model`` if ``user_id`` owns it, else NotFound."""
    tbl = model.__table__
    row = await database.fetch_one(
        select(tbl).where(and_(tbl.c.id == row_id, tbl.c.user_id == user_id))
    )
    if not row:
        raise NotFound(resource)
    return row_to_dict(row, tbl)


async def ensure_contact_owned(contact_id: Optional[str], user_id: str) -> None:
    if contact_id is None:
        return
    tbl = models.Contact.__table__
    row = await database.fetch_one(
        select(tbl.c.id).where(and_(tbl.c.id == contact_id, tbl.c.user_id == user_id))
    )
    if not row:
        raise NotFound("contact")


async def ensure_invoice_owned(invoice_id: Optional[str], user_id: str) -> None:
    if invoice_id is None:
        return
    tbl = models.Invoice.__table__
    row = await database.fetch_one(
        select(tbl.c.id).where(and_(tbl.c.id == invoice_id, tbl.c.user_id == user_id))
    )
    if not row:
        raise NotFound("invoice")


async def contact_summaries(contact_ids: Iterable[Optional[str]], user_id: str) -> dict:
    """Map contact id -> summary dict for the owner's contacts among ``contact_ids``."""
    ids = {cid for cid in contact_ids if cid}
    if not ids:
        return {}
    tbl = models.Contact.__table__
    cols = [tbl.c[name] for name in CONTACT_SUMMARY]
    rows = await database.fetch_all(
        select(*cols).where(and_(tbl.c.user_id == user_id, tbl.c.id.in_(ids)))
    )
    return {r["id"]: row_to_dict(r, CONTACT_SUMMARY) for r in rows}


async def best_effort(lookup, what: str):
    """Await ``lookup``; a failure is logged and reported as None."""
    try:
        return await lookup
    except Exception:
        logger.warning("could not load %s", what, exc_info=True)
        return None
