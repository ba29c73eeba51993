"""Wait engine: block on a correlation key by polling the state store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from .config import WaitConfig
from .errors import ProcessFailedError
from .persistence import ProcessRecord, ProcessRepository, ProcessStatus
from .utils.retry import poll_intervals

logger = logging.getLogger(__name__)


class WaitOutcome(BaseModel):
    """Result of a wait: either the DONE payload or a timeout handle."""

    correlation_key: str
    completed: bool
    result: Any = None

    @property
    def timed_out(self) -> bool:
        return not self.completed


class Waiter:
    """Poll a :class:`ProcessRepository` until a record turns terminal.

    Polls start at ``poll_floor_ms`` and double up to ``poll_ceiling_ms``.
    Nothing is shared between waiters beyond the repository, so any number of
    keys can be awaited concurrently and the completion may come from another
    process entirely.
    """

    def __init__(
        self,
        repository: ProcessRepository,
        timeout_ms: int = 25_000,
        poll_floor_ms: int = 50,
        poll_ceiling_ms: int = 1_000,
        read_timeout_ms: int = 200,
    ) -> None:
        if poll_floor_ms <= 0 or poll_ceiling_ms < poll_floor_ms:
            raise ValueError("poll interval floor must be positive and not above ceiling")
        self._repository = repository
        self.timeout_ms = timeout_ms
        self.poll_floor = poll_floor_ms / 1000
        self.poll_ceiling = poll_ceiling_ms / 1000
        self.read_timeout = read_timeout_ms / 1000

    @classmethod
    def from_config(cls, repository: ProcessRepository, config: WaitConfig) -> "Waiter":
        return cls(
            repository,
            timeout_ms=config.timeout_ms,
            poll_floor_ms=config.poll_floor_ms,
            poll_ceiling_ms=config.poll_ceiling_ms,
            read_timeout_ms=config.read_timeout_ms,
        )

    async def _poll(
        self, correlation_key: str, timeout: Optional[float] = None
    ) -> Optional[ProcessRecord]:
        """Read the record, treating any failure as "no answer yet"."""
        timeout = self.read_timeout if timeout is None else min(timeout, self.read_timeout)
        try:
            return await asyncio.wait_for(self._repository.read(correlation_key), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Read timed out while waiting on correlation_key={correlation_key}")
        except Exception as e:
            logger.warning(f"Read failed while waiting on correlation_key={correlation_key}: {e}")
        return None

    async def wait(self, correlation_key: str, timeout_ms: Optional[int] = None) -> WaitOutcome:
        """Block until the record is terminal or the deadline passes.

        Args:
            correlation_key: Key of the unit of work to wait on.
            timeout_ms: Deadline override; defaults to the configured timeout.

        Returns:
            A completed outcome carrying the DONE payload, or a timed out
            outcome carrying only the correlation key.

        Raises:
            ProcessFailedError: The unit of work finished in ERROR.
        """
        loop = asyncio.get_running_loop()
        timeout = (self.timeout_ms if timeout_ms is None else timeout_ms) / 1000
        deadline = loop.time() + timeout

        intervals = poll_intervals(self.poll_floor, self.poll_ceiling)
        while True:
            # a read never runs past the deadline
            record = await self._poll(correlation_key, max(deadline - loop.time(), 0.001))
            # a missing record is indistinguishable from PENDING
            if record is not None:
                if record.status is ProcessStatus.DONE:
                    logger.debug(f"Wait resolved for correlation_key={correlation_key}")
                    return WaitOutcome(
                        correlation_key=correlation_key,
                        completed=True,
                        result=record.result_payload,
                    )
                if record.status is ProcessStatus.ERROR:
                    raise ProcessFailedError(correlation_key, record.error_payload)

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info(
                    f"Wait timed out after {timeout:.3f}s for correlation_key={correlation_key}"
                )
                return WaitOutcome(correlation_key=correlation_key, completed=False)
            delay = min(next(intervals), remaining)
            logger.debug(
                f"correlation_key={correlation_key} still pending, next poll in {delay:.3f}s"
            )
            await asyncio.sleep(delay)

    async def is_pending(self, correlation_key: str) -> bool:
        """Return ``True`` when a PENDING record exists for the key."""
        record = await self._poll(correlation_key)
        return record is not None and record.status is ProcessStatus.PENDING
