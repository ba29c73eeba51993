"""Exception hierarchy for the waitroom coordinator."""

from __future__ import annotations

from typing import Any, Optional


class WaitroomError(Exception):
    """Base class for coordinator errors."""


class StoreError(WaitroomError):
    """A state store operation failed after retries."""


class EngineError(WaitroomError):
    """Triggering the external workflow engine failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProcessFailedError(WaitroomError):
    """The unit of work finished in the ERROR state.

    This is a domain failure reported by the workflow, not a failure of the
    coordinator itself.
    """

    def __init__(self, correlation_key: str, error: dict[str, Any] | None) -> None:
        self.correlation_key = correlation_key
        self.error = error or {"message": "Unknown error"}
        super().__init__(self.error.get("message", "Unknown error"))
