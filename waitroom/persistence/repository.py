"""Repository abstraction for process state persistence."""

from __future__ import annotations

from typing import Any, Protocol

from .models import ProcessRecord, TerminalWrite


class ProcessRepository(Protocol):
    """Protocol for process state backends.

    Every backend must be safe to share between processes: the only
    coordination between a waiter and a completer is the atomic
    compare-and-set on ``status`` that these methods perform.
    """

    async def upsert_pending(self, correlation_key: str) -> bool:
        """Create a PENDING record, or refresh ``updated_at`` if still PENDING.

        Returns ``True`` only when this call created the record. Terminal
        records are left untouched.
        """

    async def complete(self, correlation_key: str, result: Any) -> TerminalWrite:
        """Compare-and-set PENDING -> DONE.

        A missing record is inserted as DONE, so a completion that races ahead
        of ``upsert_pending`` is kept. Terminal records are left untouched.
        """

    async def fail(self, correlation_key: str, error: Any) -> TerminalWrite:
        """Compare-and-set PENDING -> ERROR, symmetric to :meth:`complete`."""

    async def read(self, correlation_key: str) -> ProcessRecord | None:
        """Point lookup that never waits long on a concurrent writer."""

    async def list_all(self) -> list[ProcessRecord]:
        """Return every record, most recently updated first."""

    async def delete(self, correlation_key: str) -> bool:
        """Physically remove a record."""

    async def count_pending(self) -> int:
        """Return the number of PENDING records."""

    async def fail_all_pending(self, error: Any) -> int:
        """Transition every PENDING record to ERROR and return how many."""

    async def close(self) -> None:
        """Release backend resources."""
