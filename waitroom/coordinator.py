"""Correlation completion coordinator."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .audit import AuditLog, ProcessEvent
from .cleanup import CleanupScheduler
from .completion import CompletionSignal, Outcome
from .config import WaitroomConfig, load_config
from .engines import BaseEngineClient, get_engine_client
from .errors import EngineError, StoreError
from .persistence import ProcessRecord, ProcessRepository, get_repository
from .utils.retry import retry_async
from .waiter import WaitOutcome, Waiter

logger = logging.getLogger(__name__)


class Coordinator:
    """Record, await and complete units of work by correlation key.

    All state lives in the repository, so a coordinator in one process can
    wait on work that a coordinator in another process completes.
    """

    def __init__(
        self,
        repository: ProcessRepository,
        engine: BaseEngineClient,
        waiter: Optional[Waiter] = None,
        cleanup: Optional[CleanupScheduler] = None,
        audit: Optional[AuditLog] = None,
        upsert_attempts: int = 3,
    ) -> None:
        self.repository = repository
        self.engine = engine
        self.audit = audit
        self.waiter = waiter or Waiter(repository)
        self.cleanup = cleanup or CleanupScheduler(repository, audit=audit)
        self.signal = CompletionSignal(repository, cleanup=self.cleanup, audit=audit)
        self.upsert_attempts = upsert_attempts

    @classmethod
    def from_config(cls, config: Optional[WaitroomConfig] = None) -> "Coordinator":
        repository = get_repository(config=config) if config is not None else get_repository()
        engine = get_engine_client(config=config) if config is not None else get_engine_client()
        config = config or load_config()
        audit = AuditLog(config.audit_database_url) if config.audit_database_url else None
        return cls(
            repository,
            engine,
            waiter=Waiter.from_config(repository, config.wait),
            cleanup=CleanupScheduler(repository, grace_ms=config.cleanup.grace_ms, audit=audit),
            audit=audit,
        )

    def _audit(self, correlation_key: str, event: str, **kwargs: Any) -> None:
        if self.audit is not None:
            self.audit.record_later(correlation_key, event, **kwargs)

    async def begin(
        self,
        correlation_key: str,
        work_descriptor: str,
        inputs: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> WaitOutcome:
        """Register the unit of work, start it in the engine and wait for it.

        Only the call that creates the record triggers the engine; duplicate
        submissions for the same key join the existing wait.

        Raises:
            StoreError: The PENDING record could not be written.
            EngineError: Starting the work failed for any reason. The record is
                failed with the trigger error before this is raised.
            ProcessFailedError: The work finished in ERROR before the deadline.
        """
        try:
            created = await retry_async(
                lambda: self.repository.upsert_pending(correlation_key),
                attempts=self.upsert_attempts,
                description=f"upsert_pending for correlation_key={correlation_key}",
            )
        except Exception as e:
            logger.error(f"Could not register correlation_key={correlation_key}: {e}")
            raise StoreError(f"Could not register process {correlation_key}: {e}") from e

        if created:
            self._audit(correlation_key, "pending", status="PENDING", payload=inputs)
            try:
                started = await self.engine.start_process(work_descriptor, correlation_key, inputs)
            except Exception as e:
                error = e if isinstance(e, EngineError) else EngineError(
                    f"Failed to start process {work_descriptor}: {e}"
                )
                logger.error(f"Process start failed for correlation_key={correlation_key}: {error}")
                self._audit(correlation_key, "trigger_failed", payload={"message": str(error)})
                await self.signal.signal(correlation_key, Outcome.FAILURE, {"message": str(error)})
                if error is e:
                    raise
                raise error from e
            logger.info(
                f"Process {work_descriptor} started for correlation_key={correlation_key} "
                f"(instance {started.id})"
            )
        else:
            logger.info(f"Joining existing process for correlation_key={correlation_key}")

        return await self.waiter.wait(correlation_key, timeout_ms=timeout_ms)

    async def complete(
        self, correlation_key: str, outcome: Outcome | str, payload: Any = None
    ) -> bool:
        """Signal the terminal outcome for ``correlation_key``."""
        return await self.signal.signal(correlation_key, outcome, payload)

    async def status(self, correlation_key: str) -> Optional[ProcessRecord]:
        return await self.repository.read(correlation_key)

    async def list_processes(self) -> list[ProcessRecord]:
        return await self.repository.list_all()

    async def pending_count(self) -> int:
        return await self.repository.count_pending()

    async def abort_pending(self, reason: str = "shutdown") -> int:
        """Fail every PENDING record with ``Aborted: <reason>``.

        Meant for operators only: waits on any instance sharing the store
        resolve to the abort error.
        """
        count = await self.repository.fail_all_pending({"message": f"Aborted: {reason}"})
        logger.warning(f"Aborted {count} pending process(es): {reason}")
        return count

    async def history(self, correlation_key: str) -> list[ProcessEvent]:
        if self.audit is None:
            return []
        return await self.audit.history(correlation_key)

    async def close(self) -> None:
        await self.cleanup.close()
        await self.engine.disconnect()
        if self.audit is not None:
            await self.audit.close()
        await self.repository.close()
