from __future__ import annotations
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

def insert_for(session: AsyncSession):
    """Dialect `insert()` that supports ON CONFLICT for the session's engine."""
    name = session.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported on the '{name}' dialect") from None
