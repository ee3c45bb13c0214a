import uuid
from datetime import datetime, timezone

from databases import Database
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base

from crm.settings import DATABASE_URL

database = Database(DATABASE_URL)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)
Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def row_to_dict(rec, columns) -> dict:
    """Copy a fetched record into a plain dict.

    ``columns`` is a table (all of its columns are read) or an iterable of
    column names. Records are read key by key so the driver's type
    processors apply (dates, numerics) whatever the backend.
    """
    if hasattr(columns, "columns"):
        names = [c.name for c in columns.columns]
    else:
        names = list(columns)
    return {name: rec[name] for name in names}
