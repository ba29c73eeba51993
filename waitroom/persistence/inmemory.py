"""In-memory implementation of the process repository."""

from __future__ import annotations

from typing import Any, Dict

from .models import ProcessRecord, ProcessStatus, TerminalWrite, normalize_error, utc_now
from .repository import ProcessRepository


class InMemoryProcessRepository(ProcessRepository):
    """Store process state in local memory.

    Useful for tests or when no database is configured. Data is not shared
    between processes nor persisted across restarts. Each method runs
    without awaiting between its check and its write, so the
    compare-and-set semantics hold within one event loop.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ProcessRecord] = {}

    # ------------------------------------------------------------------
    def _touch(self, record: ProcessRecord) -> None:
        record.updated_at = max(record.updated_at, utc_now())

    def _terminate(
        self,
        correlation_key: str,
        status: ProcessStatus,
        result: Any = None,
        error: Any = None,
    ) -> TerminalWrite:
        record = self._records.get(correlation_key)
        if record is None:
            self._records[correlation_key] = ProcessRecord(
                correlation_key=correlation_key,
                status=status,
                result_payload=result,
                error_payload=error,
            )
            return TerminalWrite.CREATED
        if record.is_terminal:
            return TerminalWrite.UNCHANGED
        record.status = status
        record.result_payload = result
        record.error_payload = error
        self._touch(record)
        return TerminalWrite.TRANSITIONED

    async def upsert_pending(self, correlation_key: str) -> bool:
        record = self._records.get(correlation_key)
        if record is None:
            self._records[correlation_key] = ProcessRecord(correlation_key=correlation_key)
            return True
        if record.status is ProcessStatus.PENDING:
            self._touch(record)
        return False

    async def complete(self, correlation_key: str, result: Any) -> TerminalWrite:
        return self._terminate(correlation_key, ProcessStatus.DONE, result=result)

    async def fail(self, correlation_key: str, error: Any) -> TerminalWrite:
        return self._terminate(
            correlation_key, ProcessStatus.ERROR, error=normalize_error(error)
        )

    async def read(self, correlation_key: str) -> ProcessRecord | None:
        record = self._records.get(correlation_key)
        # callers get a snapshot, never the live object
        return record.model_copy(deep=True) if record else None

    async def list_all(self) -> list[ProcessRecord]:
        records = sorted(
            self._records.values(), key=lambda r: r.updated_at, reverse=True
        )
        return [r.model_copy(deep=True) for r in records]

    async def delete(self, correlation_key: str) -> bool:
        return self._records.pop(correlation_key, None) is not None

    async def count_pending(self) -> int:
        return sum(1 for r in self._records.values() if r.status is ProcessStatus.PENDING)

    async def fail_all_pending(self, error: Any) -> int:
        pending = [
            key
            for key, record in self._records.items()
            if record.status is ProcessStatus.PENDING
        ]
        for key in pending:
            await self.fail(key, error)
        return len(pending)

    async def close(self) -> None:
        pass
