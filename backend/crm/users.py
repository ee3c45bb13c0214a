"""Local user rows mirrored from the identity provider."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from crm import models
from crm.db import database, new_id, utcnow, row_to_dict

logger = logging.getLogger(__name__)

# dialect-specific INSERT constructs that support ON CONFLICT
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


async def get_user_by_external_id(external_id: str) -> Optional[dict]:
    utbl = models.User.__table__
    row = await database.fetch_one(select(utbl).where(utbl.c.external_id == external_id))
    return row_to_dict(row, utbl) if row else None


async def ensure_user(external_id: str) -> dict:
    """Return the local user for ``external_id``, creating a bare row on first sight."""
    user = await get_user_by_external_id(external_id)
    if user:
        return user
    return await sync_user(external_id)


async def sync_user(
    external_id: str,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> dict:
    """Upsert keyed by external id. Profile fields are overwritten only when given.

    A single ``INSERT ... ON CONFLICT (external_id) DO UPDATE`` statement, so
    concurrent first-sight requests for one id all end on the same row.
    """
    utbl = models.User.__table__
    now = utcnow()
    changes = {"updated_at": now}
    if email is not None:
        changes["email"] = email
    if first_name is not None:
        changes["first_name"] = first_name
    if last_name is not None:
        changes["last_name"] = last_name

    insert = _UPSERT_INSERTS.get(database.url.dialect)
    if insert is None:
        raise RuntimeError(f"user upsert not supported on {database.url.dialect}")
    stmt = insert(utbl).values(
        id=new_id(),
        external_id=external_id,
        email=email,
        first_name=first_name or "",
        last_name=last_name or "",
        created_at=now,
        updated_at=now,
    )
    await database.execute(stmt.on_conflict_do_update(index_elements=[utbl.c.external_id], set_=changes))
    logger.info("synced user %s", external_id)
    return await get_user_by_external_id(external_id)


async def delete_user(external_id: str) -> bool:
    """Delete the user and everything it owns. Returns False if unknown."""
    user = await get_user_by_external_id(external_id)
    if not user:
        return False
    uid = user["id"]
    itbl = models.Invoice.__table__
    ltbl = models.InvoiceItem.__table__
    async with database.transaction():
        owned_invoices = select(itbl.c.id).where(itbl.c.user_id == uid)
        await database.execute(ltbl.delete().where(ltbl.c.invoice_id.in_(owned_invoices)))
        for model in (models.Expense, models.Task, models.Invoice, models.Contact):
            tbl = model.__table__
            await database.execute(tbl.delete().where(tbl.c.user_id == uid))
        utbl = models.User.__table__
        await database.execute(utbl.delete().where(utbl.c.id == uid))
    logger.info("deleted user %s", external_id)
    return True
