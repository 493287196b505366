from __future__ import annotations
from typing import Any, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from walkfeed.models import Walk
from walkfeed.schemas import iso_utc
from walkfeed.services.status import last_successful_run

async def list_walks(session: AsyncSession) -> List[Walk]:
    """All walks by ascending date; undated walks come first, ties broken by id."""
    stmt = select(Walk).order_by(Walk.walk_date.asc().nulls_first(), Walk.id.asc())
    res = await session.execute(stmt)
    return list(res.scalars().all())

def walk_to_dict(w: Walk) -> Dict[str, Any]:
    return {
        "id": w.id,
        "group_name": w.group_name,
        "title": w.title,
        "difficulty": w.difficulty,
        "distance": w.distance,
        "walk_date": iso_utc(w.walk_date),
        "location": w.location,
        "details_url": w.details_url,
        "description": w.description,
        "last_seen": iso_utc(w.last_seen),
    }

async def read_snapshot(session: AsyncSession) -> Dict[str, Any]:
    """Walks plus freshness. Two plain reads; no transaction spans them."""
    walks = await list_walks(session)
    last_run = await last_successful_run(session)
    return {
        "data": [walk_to_dict(w) for w in walks],
        "lastScrapeTime": iso_utc(last_run),
    }
