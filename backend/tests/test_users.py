import asyncio

import pytest
from sqlalchemy import select, func

from crm import models
from crm.db import database
from crm.users import ensure_user, get_user_by_external_id, sync_user

pytestmark = pytest.mark.anyio


async def _user_count() -> int:
    return int(await database.fetch_val(select(func.count()).select_from(models.User.__table__)))


async def test_concurrent_sync_for_new_id_yields_one_row(db):
    results = await asyncio.gather(*(sync_user("user_race", email="a@example.com") for _ in range(5)))
    assert len({r["id"] for r in results}) == 1
    assert all(r["email"] == "a@example.com" for r in results)
    assert await _user_count() == 1


async def test_concurrent_first_sight_requests_share_user(db):
    results = await asyncio.gather(*(ensure_user("user_first") for _ in range(5)))
    assert len({r["id"] for r in results}) == 1
    assert await _user_count() == 1


async def test_parallel_first_requests_over_http(client, alice):
    responses = await asyncio.gather(
        client.get("/dashboard/stats", headers=alice),
        client.get("/dashboard/financial", headers=alice),
        client.get("/contacts", headers=alice),
        client.get("/tasks", headers=alice),
    )
    assert [r.status_code for r in responses] == [200, 200, 200, 200]
    assert await _user_count() == 1


async def test_sync_only_overwrites_given_fields(db):
    created = await sync_user("user_ext", email="ada@example.com", first_name="Ada", last_name="Lovelace")
    updated = await sync_user("user_ext", first_name="Augusta")
    assert updated["id"] == created["id"]
    assert updated["first_name"] == "Augusta"
    assert updated["last_name"] == "Lovelace"
    assert updated["email"] == "ada@example.com"

    # a bare first-sight call never blanks an existing profile
    same = await ensure_user("user_ext")
    assert same["first_name"] == "Augusta"
    assert (await get_user_by_external_id("user_ext"))["email"] == "ada@example.com"
