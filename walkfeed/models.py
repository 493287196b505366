from __future__ import annotations
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone

from walkfeed.services.records import UNKNOWN, NOT_SPECIFIED

# The scraper_status table holds exactly one row under this key.
STATUS_ROW_ID = 1

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class UTCTimestamp(TypeDecorator):
    """Aware UTC in Python, a plain UTC wall time in the column.

    Naive values coming in are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

class Walk(SQLModel, table=True):
    __tablename__ = "walks"

    id: str = Field(primary_key=True, max_length=64)
    group_name: str = Field(default=UNKNOWN, max_length=255)
    title: str = Field(default=UNKNOWN)
    difficulty: str = Field(default=UNKNOWN, max_length=50)
    distance: str = Field(default=UNKNOWN, max_length=50)
    walk_date: Optional[datetime] = Field(default=None, index=True, sa_type=UTCTimestamp)
    location: str = Field(default=NOT_SPECIFIED)
    details_url: str = Field(default=UNKNOWN)
    description: str = Field(default="")
    last_seen: datetime = Field(default_factory=utcnow, nullable=False, sa_type=UTCTimestamp)

class ScraperStatus(SQLModel, table=True):
    __tablename__ = "scraper_status"

    id: int = Field(default=STATUS_ROW_ID, primary_key=True)
    last_successful_run: Optional[datetime] = Field(default=None, sa_type=UTCTimestamp)
    last_run_status: str = Field(max_length=50)
    last_error_message: Optional[str] = Field(default=None)

    # Bumped by every write so concurrent writers can be told apart after the fact
    version: int = Field(default=1, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=UTCTimestamp)
