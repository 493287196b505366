from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from walkfeed.services.identity import derive_walk_id

UNKNOWN = "unknown"
NOT_SPECIFIED = "not specified"


@dataclass(frozen=True)
class WalkRecord:
    """One listing entry as extracted from a rendered page."""

    id: str
    group_name: str
    title: str
    difficulty: str
    distance: str
    walk_date: Optional[datetime]  # aware, UTC
    location: str
    details_url: str
    description: str

    @classmethod
    def build(
        cls,
        *,
        title: str,
        details_url: str,
        walk_date: Optional[datetime],
        group_name: str = UNKNOWN,
        difficulty: str = UNKNOWN,
        distance: str = UNKNOWN,
        location: str = NOT_SPECIFIED,
        description: str = "",
    ) -> "WalkRecord":
        if walk_date is not None:
            if walk_date.tzinfo is None:
                walk_date = walk_date.replace(tzinfo=timezone.utc)
            walk_date = walk_date.astimezone(timezone.utc)
        title = title or UNKNOWN
        details_url = details_url or UNKNOWN
        return cls(
            id=derive_walk_id(details_url, title, walk_date),
            group_name=group_name or UNKNOWN,
            title=title,
            difficulty=difficulty or UNKNOWN,
            distance=distance or UNKNOWN,
            walk_date=walk_date,
            location=location or NOT_SPECIFIED,
            details_url=details_url,
            description=description or "",
        )

    def to_payload(self) -> Dict[str, Any]:
        d = asdict(self)
        d["walk_date"] = self.walk_date.isoformat() if self.walk_date else None
        return d
