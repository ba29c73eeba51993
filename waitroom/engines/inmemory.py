"""In-memory engine client for testing."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..errors import EngineError
from .base import BaseEngineClient, StartedProcess

logger = logging.getLogger(__name__)

StartHook = Callable[[StartedProcess], Awaitable[None]]


class InMemoryEngineClient(BaseEngineClient):
    """Record started processes instead of calling a real engine.

    ``on_start`` is run as a background task for every started process,
    which lets tests play the part of the workflow and signal completion
    later. Setting ``fail_with`` makes every start raise that error.
    """

    def __init__(
        self,
        on_start: Optional[StartHook] = None,
        fail_with: Optional[Exception] = None,
    ) -> None:
        self.started: List[StartedProcess] = []
        self.on_start = on_start
        self.fail_with = fail_with
        self._tasks: Set[asyncio.Task] = set()

    async def start_process(
        self,
        work_descriptor: str,
        correlation_key: str,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> StartedProcess:
        if self.fail_with is not None:
            if isinstance(self.fail_with, EngineError):
                raise self.fail_with
            raise EngineError(f"Failed to start process: {self.fail_with}") from self.fail_with

        process = StartedProcess(
            id=str(uuid.uuid4()),
            work_descriptor=work_descriptor,
            correlation_key=correlation_key,
            variables=dict(inputs or {}),
        )
        self.started.append(process)
        logger.debug(f"Started in-memory process {process.id} for correlation_key={correlation_key}")

        if self.on_start is not None:
            task = asyncio.get_running_loop().create_task(self.on_start(process))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return process

    async def disconnect(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
