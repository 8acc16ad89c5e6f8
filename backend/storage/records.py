from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    candidate_id: str = Field(index=True)
    candidate_name: Optional[str] = Field(default=None)
    status: str = Field(index=True)  # "completed" or "abandoned"
    final_score: Optional[int] = Field(default=None)
    payload: str  # JSON of the InterviewSession snapshot
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    saved_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class ProgressRecord(SQLModel, table=True):
    candidate_id: str = Field(primary_key=True)
    session_id: str
    payload: str
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
