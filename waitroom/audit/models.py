from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class ProcessEvent(SQLModel, table=True):
    """Append-only history entry for one coordinator event."""

    __tablename__ = "process_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    correlation_key: str = Field(index=True)
    event: str
    status: Optional[str] = None
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
