"""Base interface for external workflow engine clients."""

from __future__ import annotations

import abc
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class StartedProcess(BaseModel):
    """Handle returned by the engine for a started process instance."""

    id: str
    work_descriptor: str
    correlation_key: str
    definition_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class BaseEngineClient(metaclass=abc.ABCMeta):
    """Abstract client that starts units of work in a workflow engine.

    Starting is fire-and-forget from the coordinator's point of view: the
    engine is expected to report completion later, under the same
    correlation key, through the completion endpoint.
    """

    async def connect(self) -> None:
        """Open connection to engine (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to engine (no-op by default)."""
        pass

    @abc.abstractmethod
    async def start_process(
        self,
        work_descriptor: str,
        correlation_key: str,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> StartedProcess:
        """Start one process instance, passing ``correlation_key`` through.

        Raises:
            EngineError: The engine rejected the request or was unreachable.
        """
        raise NotImplementedError
