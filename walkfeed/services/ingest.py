"""Server side of the write endpoint.

A batch moves idle -> processing -> succeeded | failed. Each record is an
independent upsert with its own commit; a record that cannot be validated
or written is skipped and counted. Only batch-level problems (bad payload,
lost store connection, unexpected faults) fail the run. Every batch ends
with exactly one run-status write.
"""
from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walkfeed.models import Walk, utcnow
from walkfeed.schemas import IDENTITY_FIELDS, WalkIn
from walkfeed.services.status import RunOutcome, record_run_outcome
from walkfeed.services.upsert import insert_for

log = structlog.get_logger(__name__)

# Errors that mean the store itself is gone, not that one row was bad
STORE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, OSError)

MUTABLE_FIELDS = (
    "group_name",
    "title",
    "difficulty",
    "distance",
    "walk_date",
    "location",
    "details_url",
    "description",
    "last_seen",
)


class PayloadError(ValueError):
    """The request body is not a batch of walk objects."""


class StoreUnavailableError(RuntimeError):
    pass


class IngestState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class IngestResult:
    state: IngestState = IngestState.IDLE
    written: int = 0
    skipped: int = 0
    message: str = ""
    client_error: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == IngestState.SUCCEEDED


def decode_batch(body: Union[bytes, str, None]) -> List[Dict[str, Any]]:
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadError(f"Invalid JSON received: {e}") from e
    try:
        data = json.loads(body or "")
    except ValueError as e:
        raise PayloadError(f"Invalid JSON received: {e}") from e
    return validate_batch_shape(data)


def validate_batch_shape(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, list):
        raise PayloadError("Expected an array of walks, but received something else.")
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            raise PayloadError(f"Walk at index {idx} is not an object.")
        missing = [f for f in IDENTITY_FIELDS if f not in item]
        if missing:
            raise PayloadError(f"Walk at index {idx} is missing required field(s): {', '.join(missing)}.")
    return data


async def upsert_walk(session: AsyncSession, walk: WalkIn, now: datetime) -> None:
    insert = insert_for(session)
    values = walk.model_dump()
    values["last_seen"] = now
    stmt = insert(Walk).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Walk.id],
        set_={name: getattr(stmt.excluded, name) for name in MUTABLE_FIELDS},
    )
    await session.execute(stmt)
    await session.commit()


def _describe(e: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


async def _write_records(session: AsyncSession, items: List[Dict[str, Any]], now: datetime, result: IngestResult) -> None:
    for idx, item in enumerate(items):
        try:
            walk = WalkIn.model_validate(item)
        except ValidationError as e:
            result.skipped += 1
            log.warning("walk_rejected", index=idx, walk_id=item.get("id"), error=_describe(e))
            continue
        try:
            await upsert_walk(session, walk, now)
        except STORE_UNAVAILABLE_ERRORS as e:
            await session.rollback()
            raise StoreUnavailableError(f"Database unavailable: {getattr(e, 'orig', None) or e}") from e
        except SQLAlchemyError as e:
            await session.rollback()
            result.skipped += 1
            log.warning("walk_write_failed", index=idx, walk_id=walk.id, error=str(e))
            continue
        result.written += 1


async def _record_status(session: AsyncSession, outcome: RunOutcome, error: Optional[str], now: datetime) -> None:
    try:
        await session.rollback()
        await record_run_outcome(session, outcome, error=error, now=now)
    except (SQLAlchemyError, OSError) as e:
        log.error("run_status_write_failed", outcome=outcome.value, error=str(e))


async def ingest_batch(session: AsyncSession, body: Union[bytes, str, list, None], now: Optional[datetime] = None) -> IngestResult:
    """Validate, upsert and close the run with one status write."""
    now = now or utcnow()
    result = IngestResult()
    try:
        items = validate_batch_shape(body) if isinstance(body, list) else decode_batch(body)
        result.state = IngestState.PROCESSING
        log.info("ingest_started", count=len(items))
        await _write_records(session, items, now, result)
    except PayloadError as e:
        result.state = IngestState.FAILED
        result.client_error = True
        result.message = str(e)
    except StoreUnavailableError as e:
        result.state = IngestState.FAILED
        result.message = str(e)
    except Exception as e:
        result.state = IngestState.FAILED
        result.message = f"Internal error: {e}"
        log.exception("ingest_internal_error")
    else:
        result.state = IngestState.SUCCEEDED
        result.message = f"Successfully processed {result.written} walks."

    if result.succeeded:
        await _record_status(session, RunOutcome.SUCCESS, None, now)
        log.info("ingest_succeeded", written=result.written, skipped=result.skipped)
    else:
        await _record_status(session, RunOutcome.FAILURE, result.message, now)
        log.error("ingest_failed", error=result.message, written=result.written, skipped=result.skipped)
    return result
