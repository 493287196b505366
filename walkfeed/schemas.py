from __future__ import annotations
from typing import Any, Optional
from datetime import datetime, timezone
from pydantic import field_validator
from sqlmodel import SQLModel, Field

from walkfeed.services.records import UNKNOWN, NOT_SPECIFIED

# Fields a batch element must carry for the batch to be accepted at all
IDENTITY_FIELDS = ("id", "title", "details_url")

class WalkIn(SQLModel):
    """One element of the write endpoint's JSON array."""

    id: str = Field(min_length=1, max_length=64)
    group_name: str = UNKNOWN
    title: str = UNKNOWN
    difficulty: str = UNKNOWN
    distance: str = UNKNOWN
    walk_date: Optional[datetime] = None
    location: str = NOT_SPECIFIED
    details_url: str = UNKNOWN
    description: str = ""

    @field_validator("group_name", "title", "difficulty", "distance", "details_url", mode="before")
    @classmethod
    def _unknown_if_blank(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNKNOWN
        return v

    @field_validator("location", mode="before")
    @classmethod
    def _location_sentinel(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return NOT_SPECIFIED
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _description_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("walk_date", mode="before")
    @classmethod
    def _blank_date(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("walk_date")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        try:
            return v.astimezone(timezone.utc)
        except OverflowError as e:
            raise ValueError(f"walk_date out of range in UTC: {v.isoformat()}") from e

def iso_utc(dt: Optional[datetime]) -> Optional[str]:
    """UTC timestamp -> 'YYYY-MM-DDTHH:MM:SSZ'. Naive values are read as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")
