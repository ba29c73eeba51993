from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from .models import ProcessEvent

logger = logging.getLogger(__name__)


class AuditLog:
    """Durable, append-only mirror of process lifecycle events.

    The mirror sits beside the coordination path: writes are scheduled with
    :meth:`record_later` and any failure is logged and dropped, so the audit
    database can never fail a request nor affect a completion.
    """

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def init_db(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.init_db()
        async with AsyncSession(self.engine) as session:
            yield session

    async def record(
        self,
        correlation_key: str,
        event: str,
        status: Optional[str] = None,
        payload: Any = None,
    ) -> ProcessEvent:
        if payload is not None and not isinstance(payload, dict):
            payload = {"value": payload}
        row = ProcessEvent(
            correlation_key=correlation_key, event=event, status=status, payload=payload
        )
        async with self.session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return row

    def record_later(
        self,
        correlation_key: str,
        event: str,
        status: Optional[str] = None,
        payload: Any = None,
    ) -> None:
        """Schedule :meth:`record` without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self._record_quietly(correlation_key, event, status, payload)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _record_quietly(
        self, correlation_key: str, event: str, status: Optional[str], payload: Any
    ) -> None:
        try:
            await self.record(correlation_key, event, status=status, payload=payload)
        except Exception as e:
            logger.error(
                f"Failed to write audit event {event} for correlation_key={correlation_key}: {e}"
            )

    async def history(self, correlation_key: str) -> list[ProcessEvent]:
        stmt = (
            select(ProcessEvent)
            .where(ProcessEvent.correlation_key == correlation_key)
            .order_by(ProcessEvent.id)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def drain(self) -> None:
        """Wait for scheduled writes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.engine.dispose()
