from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, and_, or_

from crm.db import database, new_id, utcnow, row_to_dict
from crm import models, schemas
from crm.deps import get_current_user
from crm.ownership import fetch_owned, ensure_contact_owned, contact_summaries

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _values(payload: schemas.TaskIn) -> dict:
    data = payload.model_dump()
    data["status"] = payload.status.value
    data["priority"] = payload.priority.value
    return data


async def _with_contact(task: dict, user_id: str) -> dict:
    contacts = await contact_summaries([task["contact_id"]], user_id)
    return {**task, "contact": contacts.get(task["contact_id"])}


@router.get("", response_model=list[schemas.TaskOut])
async def list_tasks(
    status: schemas.TaskStatus | None = None,
    priority: schemas.TaskPriority | None = None,
    contact_id: str | None = None,
    search: str | None = Query(default=None, description="Case-insensitive match on title and description"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    tbl = models.Task.__table__
    conds = [tbl.c.user_id == user["id"]]
    if status:
        conds.append(tbl.c.status == status.value)
    if priority:
        conds.append(tbl.c.priority == priority.value)
    if contact_id:
        conds.append(tbl.c.contact_id == contact_id)
    if search:
        conds.append(or_(tbl.c.title.ilike(f"%{search}%"), tbl.c.description.ilike(f"%{search}%")))
    stmt = (
        select(tbl)
        .where(and_(*conds))
        .order_by(tbl.c.due_date.desc().nulls_last(), tbl.c.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = await database.fetch_all(stmt)
    tasks = [row_to_dict(r, tbl) for r in rows]
    contacts = await contact_summaries((t["contact_id"] for t in tasks), user["id"])
    return [{**t, "contact": contacts.get(t["contact_id"])} for t in tasks]


@router.post("", response_model=schemas.TaskOut, status_code=201)
async def create_task(payload: schemas.TaskIn, user=Depends(get_current_user)):
    await ensure_contact_owned(payload.contact_id, user["id"])
    tbl = models.Task.__table__
    now = utcnow()
    tid = new_id()
    await database.execute(
        tbl.insert().values(id=tid, user_id=user["id"], created_at=now, updated_at=now, **_values(payload))
    )
    return await _with_contact(await fetch_owned(models.Task, tid, user["id"], "task"), user["id"])


@router.get("/{task_id}", response_model=schemas.TaskOut)
async def get_task(task_id: str, user=Depends(get_current_user)):
    task = await fetch_owned(models.Task, task_id, user["id"], "task")
    return await _with_contact(task, user["id"])


@router.put("/{task_id}", response_model=schemas.TaskOut)
async def update_task(task_id: str, payload: schemas.TaskIn, user=Depends(get_current_user)):
    await fetch_owned(models.Task, task_id, user["id"], "task")
    await ensure_contact_owned(payload.contact_id, user["id"])
    tbl = models.Task.__table__
    await database.execute(
        tbl.update().where(and_(tbl.c.id == task_id, tbl.c.user_id == user["id"]))
        .values(updated_at=utcnow(), **_values(payload))
    )
    return await _with_contact(await fetch_owned(models.Task, task_id, user["id"], "task"), user["id"])


@router.delete("/{task_id}", status_code=204)
async def delete_task(task_id: str, user=Depends(get_current_user)):
    await fetch_owned(models.Task, task_id, user["id"], "task")
    tbl = models.Task.__table__
    await database.execute(tbl.delete().where(and_(tbl.c.id == task_id, tbl.c.user_id == user["id"])))
    return None
