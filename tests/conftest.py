# tests/conftest.py
import asyncio
import os
import tempfile

import pytest

# The engine is built at import time, so point it at a scratch database first
_DB_DIR = tempfile.mkdtemp(prefix="walkfeed-tests-")
os.environ["WALKFEED_DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("WALKFEED_CORS_ORIGINS", "*")

from walkfeed.db import AsyncSessionLocal, reset_db  # noqa: E402


@pytest.fixture
def fresh_db():
    asyncio.run(reset_db())
    yield


def run_with_session(fn, *args, **kwargs):
    """Run `fn(session, ...)` on a new session inside a fresh event loop."""

    async def _go():
        async with AsyncSessionLocal() as session:
            return await fn(session, *args, **kwargs)

    return asyncio.run(_go())


@pytest.fixture
def with_session():
    return run_with_session
