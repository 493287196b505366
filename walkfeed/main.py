from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from sqlalchemy import text

from walkfeed.config import get_settings
from walkfeed.db import AsyncSessionLocal, init_db
from walkfeed.logging_config import configure_logging
from walkfeed.web.routers.walks import router as walks_router

APP_NAME = "walkfeed"
log = structlog.get_logger(__name__)

CORS_METHODS = "GET, POST, OPTIONS"
CORS_HEADERS = "Content-Type"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    await init_db()
    log.info("api_started", routes=sorted(getattr(r, "path", "?") for r in app.router.routes))
    yield


app = FastAPI(title=f"{APP_NAME} API", version="1.0.0", lifespan=lifespan)


def _allow_origin(request: Request) -> str | None:
    origins = get_settings().cors_origins
    if "*" in origins:
        return "*"
    origin = request.headers.get("origin")
    if origin and origin in origins:
        return origin
    return None


@app.middleware("http")
async def cors(request: Request, call_next):
    allow = _allow_origin(request)
    if request.method == "OPTIONS":
        # Pre-flight: success, no body
        response = Response(status_code=200)
    else:
        response = await call_next(request)
    if allow:
        response.headers["Access-Control-Allow-Origin"] = allow
        response.headers["Access-Control-Allow-Methods"] = CORS_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
        if allow != "*":
            response.headers["Vary"] = "Origin"
    return response


app.include_router(walks_router)


@app.get("/health")
async def health_check(response: Response):
    """200 when the store answers a trivial query, 503 otherwise."""
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        response.status_code = 503
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}
