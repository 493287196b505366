from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
import structlog

from walkfeed.services.records import WalkRecord

log = structlog.get_logger(__name__)

# InvalidURL does not subclass HTTPError
DELIVERY_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass
class DeliveryReport:
    attempted: bool
    delivered: bool = False
    count: int = 0
    status_code: Optional[int] = None
    response_text: Optional[str] = None
    error: Optional[str] = None


async def deliver_batch(
    records: Sequence[WalkRecord],
    endpoint: str,
    timeout: float = 60,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DeliveryReport:
    """POST the whole batch to the ingestion endpoint exactly once.

    There is no retry: a failed delivery is logged and reported, and the
    previous run status stays authoritative until the next scheduled run.
    """
    if not records:
        log.info("delivery_skipped_empty_batch", endpoint=endpoint)
        return DeliveryReport(attempted=False)

    payload = [r.to_payload() for r in records]
    report = DeliveryReport(attempted=True, count=len(payload))
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            r = await client.post(endpoint, json=payload)
            report.status_code = r.status_code
            report.response_text = r.text
            r.raise_for_status()
    except DELIVERY_ERRORS as e:
        report.error = str(e) or type(e).__name__
        log.error("delivery_failed", endpoint=endpoint, count=len(payload), status_code=report.status_code, error=report.error)
        return report

    report.delivered = True
    log.info("delivery_succeeded", endpoint=endpoint, count=len(payload), status_code=report.status_code, response=report.response_text)
    return report
