from __future__ import annotations
import hashlib
from datetime import datetime, timezone
from typing import Optional

NO_DATE = "NoDate"
SEPARATOR = "|"


def _date_token(walk_date: Optional[datetime]) -> str:
    if walk_date is None:
        return NO_DATE
    if walk_date.tzinfo is None:
        walk_date = walk_date.replace(tzinfo=timezone.utc)
    return walk_date.astimezone(timezone.utc).isoformat()


def derive_walk_id(details_url: str, title: str, walk_date: Optional[datetime]) -> str:
    """Stable primary key for a listing: SHA-256 hex of url, title and UTC start time.

    The same instant expressed in different zones yields the same id.
    """
    raw = SEPARATOR.join([details_url or "", title or "", _date_token(walk_date)])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
