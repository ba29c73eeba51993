"""Data models for persisted process state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProcessStatus(str, Enum):
    """Lifecycle states of a unit of work."""

    PENDING = "PENDING"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self is not ProcessStatus.PENDING


class TerminalWrite(str, Enum):
    """What a terminal write did to the store."""

    TRANSITIONED = "transitioned"  # PENDING record moved to DONE or ERROR
    CREATED = "created"  # no record existed; a terminal one was inserted
    UNCHANGED = "unchanged"  # record was already terminal

    @property
    def wrote(self) -> bool:
        return self is not TerminalWrite.UNCHANGED


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_error(error: Any) -> dict[str, Any]:
    """Coerce an error value into an object carrying a ``message`` key."""
    if isinstance(error, BaseException):
        return {"message": str(error) or type(error).__name__}
    if isinstance(error, dict):
        normalized = dict(error)
        normalized.setdefault("message", "Unknown error")
        return normalized
    if error is None:
        return {"message": "Unknown error"}
    return {"message": str(error)}


class ProcessRecord(BaseModel):
    """State record for one unit of work, keyed by correlation key."""

    correlation_key: str
    status: ProcessStatus = ProcessStatus.PENDING
    result_payload: Optional[Any] = None
    error_payload: Optional[dict[str, Any]] = None
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def error_message(self) -> Optional[str]:
        if self.error_payload is None:
            return None
        return self.error_payload.get("message")
