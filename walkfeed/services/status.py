"""Run status: the single `scraper_status` row.

All writes go through `record_run_outcome`, one INSERT .. ON CONFLICT
statement keyed by STATUS_ROW_ID. Concurrent writers never create a second
row; the last statement to commit wins.
"""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from walkfeed.models import STATUS_ROW_ID, ScraperStatus, utcnow
from walkfeed.services.upsert import insert_for


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


async def record_run_outcome(
    session: AsyncSession,
    outcome: RunOutcome,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    success = outcome == RunOutcome.SUCCESS
    insert = insert_for(session)
    stmt = insert(ScraperStatus).values(
        id=STATUS_ROW_ID,
        last_successful_run=now if success else None,
        last_run_status=outcome.value,
        last_error_message=None if success else error,
        version=1,
        updated_at=now,
    )
    update = {
        "last_run_status": stmt.excluded.last_run_status,
        "last_error_message": stmt.excluded.last_error_message,
        "updated_at": stmt.excluded.updated_at,
        "version": ScraperStatus.version + 1,
    }
    # lastSuccessfulRun means "last success", so failures leave it alone
    if success:
        update["last_successful_run"] = stmt.excluded.last_successful_run
    stmt = stmt.on_conflict_do_update(index_elements=[ScraperStatus.id], set_=update)
    await session.execute(stmt)
    await session.commit()


async def get_run_status(session: AsyncSession) -> Optional[ScraperStatus]:
    res = await session.execute(select(ScraperStatus).where(ScraperStatus.id == STATUS_ROW_ID))
    return res.scalars().first()


async def last_successful_run(session: AsyncSession) -> Optional[datetime]:
    """Timestamp of the last success, only while the latest attempt succeeded."""
    res = await session.execute(
        select(ScraperStatus.last_successful_run).where(
            ScraperStatus.id == STATUS_ROW_ID,
            ScraperStatus.last_run_status == RunOutcome.SUCCESS.value,
        )
    )
    return res.scalars().first()
