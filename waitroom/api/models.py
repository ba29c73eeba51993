from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class StartRequest(BaseModel):
    correlation_key: str = Field(min_length=1, max_length=64)
    work_descriptor: str = Field(min_length=1)
    inputs: Dict[str, Any] = Field(default_factory=dict)


class CompleteRequest(BaseModel):
    correlation_key: str = Field(min_length=1)
    outcome: Literal["success", "failure"]
    payload: Any = None


class ResultResponse(BaseModel):
    status: Literal["ok"] = "ok"
    correlation_key: str
    result: Any = None


class PendingResponse(BaseModel):
    status: Literal["pending"] = "pending"
    correlation_key: str
    status_url: str


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    correlation_key: str
    error: Dict[str, Any]


class CompleteResponse(BaseModel):
    received: bool = True
    transitioned: bool


class StatusResponse(BaseModel):
    status: str  # pending | done | error | not_found
    correlation_key: str
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusListResponse(BaseModel):
    count: int
    processes: List[StatusResponse]


class HealthResponse(BaseModel):
    status: str = "ok"
    pending: int
