"""Waitroom: wait on externally orchestrated work through a shared store."""

__version__ = "0.1.0"

from .completion import CompletionSignal, Outcome
from .coordinator import Coordinator
from .engines import get_engine_client
from .errors import EngineError, ProcessFailedError, StoreError, WaitroomError
from .persistence import ProcessRecord, ProcessStatus, get_repository
from .waiter import WaitOutcome, Waiter

__all__ = [
    "CompletionSignal",
    "Coordinator",
    "EngineError",
    "Outcome",
    "ProcessFailedError",
    "ProcessRecord",
    "ProcessStatus",
    "StoreError",
    "WaitOutcome",
    "Waiter",
    "WaitroomError",
    "get_engine_client",
    "get_repository",
]
