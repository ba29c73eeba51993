"""Deferred removal of terminal records from the fast-path store."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Set

from .persistence import ProcessRepository
from .persistence.models import utc_now

if TYPE_CHECKING:
    from .audit import AuditLog

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Delete terminal records once their grace delay has elapsed.

    Cleanup is best-effort: a failed delete is logged once and left alone.
    A record is only removed when it is terminal and its last write is at
    least ``grace_ms`` old, so a status read right after completion still
    finds it.
    """

    def __init__(
        self,
        repository: ProcessRepository,
        grace_ms: int = 5_000,
        audit: Optional["AuditLog"] = None,
    ) -> None:
        self._repository = repository
        self.grace = grace_ms / 1000
        self._audit = audit
        self._tasks: Set[asyncio.Task] = set()

    @property
    def scheduled(self) -> int:
        return len(self._tasks)

    def schedule(self, correlation_key: str) -> asyncio.Task:
        """Schedule a delete for ``correlation_key`` after the grace delay."""
        task = asyncio.get_running_loop().create_task(self._delete_later(correlation_key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _delete_later(self, correlation_key: str) -> None:
        await asyncio.sleep(self.grace)
        if await self.purge(correlation_key):
            return
        # store clock ahead of ours: wait out the rest of the grace once more
        left = await self._grace_left(correlation_key)
        if left is not None:
            await asyncio.sleep(left)
            await self.purge(correlation_key)

    async def _grace_left(self, correlation_key: str) -> Optional[float]:
        """Seconds until a terminal record is old enough to delete, if it is not yet."""
        try:
            record = await self._repository.read(correlation_key)
        except Exception as e:
            logger.warning(f"Failed to read correlation_key={correlation_key} for cleanup: {e}")
            return None
        if record is None or not record.is_terminal:
            return None
        left = self.grace - (utc_now() - record.updated_at).total_seconds()
        return left if left > 0 else None

    async def purge(self, correlation_key: str) -> bool:
        """Delete the record now if it is terminal and past its grace delay."""
        try:
            record = await self._repository.read(correlation_key)
            if record is None:
                return False
            if not record.is_terminal:
                logger.warning(
                    f"Skipping cleanup of non-terminal correlation_key={correlation_key}"
                )
                return False
            age = (utc_now() - record.updated_at).total_seconds()
            if age < self.grace:
                logger.debug(
                    f"Skipping cleanup of correlation_key={correlation_key}: "
                    f"completed {age:.3f}s ago"
                )
                return False
            deleted = await self._repository.delete(correlation_key)
        except Exception as e:
            logger.error(f"Failed to remove correlation_key={correlation_key} from store: {e}")
            return False

        if deleted:
            logger.info(f"Removed correlation_key={correlation_key} from store")
            if self._audit is not None:
                self._audit.record_later(correlation_key, "cleanup", status=record.status.value)
        return deleted

    async def close(self) -> None:
        """Cancel outstanding timers; their records stay in the store."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
