"""PostgreSQL implementation of the process repository."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg

from .models import ProcessRecord, ProcessStatus, TerminalWrite, normalize_error
from .repository import ProcessRepository

_COLUMNS = "correlation_key, status, result_payload, error_payload, started_at, updated_at"


def _affected(command_status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    return int(command_status.rsplit(" ", 1)[-1])


class PostgresProcessRepository(ProcessRepository):
    """Persist process state using PostgreSQL.

    Writers rely on ``INSERT ... ON CONFLICT`` and ``UPDATE ... WHERE status =
    'PENDING'`` so that concurrent instances never produce duplicate rows nor
    move a terminal record backwards. Reads run in a read-only READ COMMITTED
    transaction with a short statement timeout.
    """

    def __init__(
        self,
        dsn: str,
        read_timeout: float = 0.2,
        min_size: int = 1,
        max_size: int = 10,
    ):
        self._dsn = dsn
        self.read_timeout = read_timeout
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        await conn.set_type_codec(
            "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
        )

    async def _get_pool(self) -> asyncpg.Pool:
        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    self._dsn,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    init=self._init_connection,
                )
                async with pool.acquire() as conn:
                    await self._ensure_schema(conn)
                self._pool = pool
        return self._pool

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS process_store (
                correlation_key TEXT PRIMARY KEY,
                status TEXT NOT NULL CHECK (status IN ('PENDING', 'DONE', 'ERROR')),
                result_payload JSONB,
                error_payload JSONB,
                started_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_process_store_status ON process_store(status)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_process_store_updated_at ON process_store(updated_at)"
        )

    @staticmethod
    def _to_record(row: asyncpg.Record) -> ProcessRecord:
        return ProcessRecord(
            correlation_key=row["correlation_key"],
            status=ProcessStatus(row["status"]),
            result_payload=row["result_payload"],
            error_payload=row["error_payload"],
            started_at=row["started_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    async def upsert_pending(self, correlation_key: str) -> bool:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            INSERT INTO process_store (correlation_key, status, started_at, updated_at)
            VALUES ($1, 'PENDING', clock_timestamp(), clock_timestamp())
            ON CONFLICT (correlation_key) DO UPDATE
            SET updated_at = GREATEST(process_store.updated_at, EXCLUDED.updated_at)
            WHERE process_store.status = 'PENDING'
            RETURNING (xmax = 0) AS inserted
            """,
            correlation_key,
        )
        # no row back means the existing record is terminal
        return bool(row and row["inserted"])

    async def _terminate(
        self, correlation_key: str, status: ProcessStatus, result: Any, error: Any
    ) -> TerminalWrite:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            INSERT INTO process_store
                (correlation_key, status, result_payload, error_payload, started_at, updated_at)
            VALUES ($1, $2, $3, $4, clock_timestamp(), clock_timestamp())
            ON CONFLICT (correlation_key) DO UPDATE
            SET status = EXCLUDED.status,
                result_payload = EXCLUDED.result_payload,
                error_payload = EXCLUDED.error_payload,
                updated_at = GREATEST(process_store.updated_at, EXCLUDED.updated_at)
            WHERE process_store.status = 'PENDING'
            RETURNING (xmax = 0) AS inserted
            """,
            correlation_key,
            status.value,
            result,
            error,
        )
        if row is None:
            return TerminalWrite.UNCHANGED
        return TerminalWrite.CREATED if row["inserted"] else TerminalWrite.TRANSITIONED

    async def complete(self, correlation_key: str, result: Any) -> TerminalWrite:
        return await self._terminate(correlation_key, ProcessStatus.DONE, result, None)

    async def fail(self, correlation_key: str, error: Any) -> TerminalWrite:
        return await self._terminate(
            correlation_key, ProcessStatus.ERROR, None, normalize_error(error)
        )

    async def read(self, correlation_key: str) -> ProcessRecord | None:
        pool = await self._get_pool()
        timeout_ms = str(int(self.read_timeout * 1000))
        async with pool.acquire(timeout=self.read_timeout) as conn:
            async with conn.transaction(isolation="read_committed", readonly=True):
                await conn.execute(
                    "SELECT set_config('statement_timeout', $1, true), "
                    "set_config('lock_timeout', $1, true)",
                    timeout_ms,
                )
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM process_store WHERE correlation_key = $1",
                    correlation_key,
                    timeout=self.read_timeout,
                )
        return self._to_record(row) if row else None

    async def list_all(self) -> list[ProcessRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {_COLUMNS} FROM process_store ORDER BY updated_at DESC"
        )
        return [self._to_record(r) for r in rows]

    async def delete(self, correlation_key: str) -> bool:
        pool = await self._get_pool()
        status = await pool.execute(
            "DELETE FROM process_store WHERE correlation_key = $1", correlation_key
        )
        return _affected(status) == 1

    async def count_pending(self) -> int:
        pool = await self._get_pool()
        return await pool.fetchval(
            "SELECT COUNT(*) FROM process_store WHERE status = 'PENDING'"
        )

    async def fail_all_pending(self, error: Any) -> int:
        pool = await self._get_pool()
        status = await pool.execute(
            """
            UPDATE process_store
            SET status = 'ERROR', error_payload = $1, result_payload = NULL,
                updated_at = GREATEST(updated_at, clock_timestamp())
            WHERE status = 'PENDING'
            """,
            normalize_error(error),
        )
        return _affected(status)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
