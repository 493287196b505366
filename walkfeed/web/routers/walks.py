from __future__ import annotations

from fastapi import APIRouter, Request, Depends
from starlette.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from walkfeed.db import get_session
from walkfeed.services.ingest import ingest_batch
from walkfeed.services.query import read_snapshot

log = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["walks"])

@router.post("/walks")
@router.post("/insert_walks", include_in_schema=False)
async def insert_walks(request: Request, session: AsyncSession = Depends(get_session)):
    body = await request.body()
    result = await ingest_batch(session, body)
    if result.succeeded:
        status_code = 200
    elif result.client_error:
        status_code = 400
    else:
        status_code = 500
    return JSONResponse(
        {
            "status": "success" if result.succeeded else "error",
            "message": result.message,
            "written": result.written,
            "skipped": result.skipped,
        },
        status_code=status_code,
    )

@router.get("/walks")
@router.get("/get_walks", include_in_schema=False)
async def get_walks(session: AsyncSession = Depends(get_session)):
    try:
        snapshot = await read_snapshot(session)
    except (SQLAlchemyError, OSError) as e:
        log.error("walks_read_failed", error=str(e))
        return JSONResponse(
            {"status": "error", "message": f"Error fetching walks: {e}", "data": [], "lastScrapeTime": None},
            status_code=500,
        )
    return JSONResponse({
        "status": "success",
        "message": f"Successfully fetched {len(snapshot['data'])} walks.",
        **snapshot,
    })
