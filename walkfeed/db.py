
from __future__ import annotations
from typing import AsyncGenerator
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from walkfeed.config import get_settings

DB_URL = get_settings().db_url

# aiosqlite connections are bound to the event loop that opened them; don't pool them.
_engine_kwargs = {"poolclass": NullPool} if DB_URL.startswith("sqlite") else {"pool_pre_ping": True}
engine = create_async_engine(DB_URL, echo=False, future=True, **_engine_kwargs)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def init_db() -> None:
    # Import for side effect: registers the tables on SQLModel.metadata
    import walkfeed.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

async def reset_db() -> None:
    """Drop and recreate every table. Used by tests and local resets."""
    import walkfeed.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
