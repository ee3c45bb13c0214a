import base64
import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before anything imports crm.db
_DB_FILE = Path(tempfile.gettempdir()) / f"crm_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["IDENTITY_JWT_SECRET"] = "test-secret"
os.environ["IDENTITY_WEBHOOK_SECRET"] = "whsec_" + base64.b64encode(b"webhook-test-secret").decode()

import httpx  # noqa: E402
import pytest  # noqa: E402

from crm import models  # noqa: E402,F401
from crm.auth_utils import create_access_token  # noqa: E402
from crm.db import Base, database, engine  # noqa: E402
from crm.main import app  # noqa: E402


# Force AnyIO to use asyncio only (no trio)
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    await database.connect()
    try:
        yield database
    finally:
        await database.disconnect()
        Base.metadata.drop_all(engine)


@pytest.fixture
async def client(db):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def bearer(external_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(external_id)}"}


@pytest.fixture
def alice():
    return bearer("user_alice")


@pytest.fixture
def bob():
    return bearer("user_bob")


async def make_contact(ac: httpx.AsyncClient, headers: dict, **fields) -> dict:
    body = {"first_name": "Ada", "last_name": "Lovelace", "company": "Analytical Engines", **fields}
    r = await ac.post("/contacts", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


async def make_invoice(ac: httpx.AsyncClient, headers: dict, contact_id: str, **fields) -> dict:
    body = {
        "contact_id": contact_id,
        "invoice_number": "INV-001",
        "issue_date": "2026-10-01",
        "due_date": "2026-10-31",
        **fields,
    }
    r = await ac.post("/invoices", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()
