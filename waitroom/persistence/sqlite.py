"""SQLite implementation of the process repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from .models import (
    ProcessRecord,
    ProcessStatus,
    TerminalWrite,
    normalize_error,
    utc_now,
)
from .repository import ProcessRepository

_COLUMNS = "correlation_key, status, result_payload, error_payload, started_at, updated_at"


def _timestamp() -> str:
    # fixed width so that SQL max() over the text column orders correctly
    return utc_now().isoformat(timespec="microseconds")


class SQLiteProcessRepository(ProcessRepository):
    """Persist process state using SQLite.

    The database runs in WAL mode so readers see the last committed image
    of a row while a writer holds the lock. Each operation opens its own
    connection, which makes the repository safe to share between threads
    and between processes pointing at the same file.
    """

    def __init__(
        self,
        db_path: str | Path,
        read_timeout: float = 0.2,
        write_timeout: float = 5.0,
    ):
        self.db_path = str(db_path)
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._connection(self.write_timeout) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS process_store (
                    correlation_key TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    result_payload TEXT,
                    error_payload TEXT,
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS ix_process_store_status ON process_store(status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS ix_process_store_updated_at ON process_store(updated_at)"
            )

    # ------------------------------------------------------------------
    # Helper methods
    @contextmanager
    def _connection(self, timeout: float) -> Iterator[sqlite3.Connection]:
        # autocommit mode; multi-statement writes open their own transaction
        conn = sqlite3.connect(self.db_path, timeout=timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection(self.write_timeout) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _execute(self, query: str, *params: Any) -> int:
        with self._connection(self.write_timeout) as conn:
            cur = conn.execute(query, params)
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._connection(self.read_timeout) as conn:
            return conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._connection(self.read_timeout) as conn:
            return conn.execute(query, params).fetchall()

    def _upsert_pending(self, correlation_key: str) -> bool:
        now = _timestamp()
        with self._transaction() as conn:
            cur = conn.execute(
                f"INSERT OR IGNORE INTO process_store ({_COLUMNS}) "
                "VALUES (?, 'PENDING', NULL, NULL, ?, ?)",
                (correlation_key, now, now),
            )
            if cur.rowcount == 1:
                return True
            conn.execute(
                "UPDATE process_store SET updated_at = max(updated_at, ?) "
                "WHERE correlation_key = ? AND status = 'PENDING'",
                (now, correlation_key),
            )
            return False

    def _terminate(
        self, correlation_key: str, status: ProcessStatus, result: Any, error: Any
    ) -> TerminalWrite:
        now = _timestamp()
        result_json = json.dumps(result) if status is ProcessStatus.DONE else None
        error_json = json.dumps(error) if status is ProcessStatus.ERROR else None
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE process_store
                SET status = ?, result_payload = ?, error_payload = ?,
                    updated_at = max(updated_at, ?)
                WHERE correlation_key = ? AND status = 'PENDING'
                """,
                (status.value, result_json, error_json, now, correlation_key),
            )
            if cur.rowcount == 1:
                return TerminalWrite.TRANSITIONED
            cur = conn.execute(
                f"INSERT OR IGNORE INTO process_store ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (correlation_key, status.value, result_json, error_json, now, now),
            )
            return TerminalWrite.CREATED if cur.rowcount == 1 else TerminalWrite.UNCHANGED

    @staticmethod
    def _to_record(row: sqlite3.Row) -> ProcessRecord:
        return ProcessRecord(
            correlation_key=row["correlation_key"],
            status=ProcessStatus(row["status"]),
            result_payload=json.loads(row["result_payload"]) if row["result_payload"] else None,
            error_payload=json.loads(row["error_payload"]) if row["error_payload"] else None,
            started_at=datetime.fromisoformat(row["started_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def upsert_pending(self, correlation_key: str) -> bool:
        return await asyncio.to_thread(self._upsert_pending, correlation_key)

    async def complete(self, correlation_key: str, result: Any) -> TerminalWrite:
        return await asyncio.to_thread(
            self._terminate, correlation_key, ProcessStatus.DONE, result, None
        )

    async def fail(self, correlation_key: str, error: Any) -> TerminalWrite:
        return await asyncio.to_thread(
            self._terminate, correlation_key, ProcessStatus.ERROR, None, normalize_error(error)
        )

    async def read(self, correlation_key: str) -> ProcessRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM process_store WHERE correlation_key = ?",
            correlation_key,
        )
        return self._to_record(row) if row else None

    async def list_all(self) -> list[ProcessRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM process_store ORDER BY updated_at DESC",
        )
        return [self._to_record(row) for row in rows]

    async def delete(self, correlation_key: str) -> bool:
        changed = await asyncio.to_thread(
            self._execute,
            "DELETE FROM process_store WHERE correlation_key = ?",
            correlation_key,
        )
        return changed == 1

    async def count_pending(self) -> int:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT COUNT(*) AS pending FROM process_store WHERE status = 'PENDING'",
        )
        return int(row["pending"]) if row else 0

    async def fail_all_pending(self, error: Any) -> int:
        return await asyncio.to_thread(
            self._execute,
            """
            UPDATE process_store
            SET status = 'ERROR', error_payload = ?, result_payload = NULL,
                updated_at = max(updated_at, ?)
            WHERE status = 'PENDING'
            """,
            json.dumps(normalize_error(error)),
            _timestamp(),
        )

    async def close(self) -> None:
        pass
