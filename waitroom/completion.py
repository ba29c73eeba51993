"""Completion signal: the single write path to a terminal state."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .persistence import ProcessRepository, TerminalWrite, normalize_error

if TYPE_CHECKING:
    from .audit import AuditLog
    from .cleanup import CleanupScheduler

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class CompletionSignal:
    """Move a record to DONE or ERROR and schedule its cleanup.

    Signalling is idempotent: only the first terminal write for a key takes
    effect, later ones are silent no-ops. A signal that arrives before the
    record exists still stores its outcome, so a later ``upsert_pending``
    for the key finds it terminal.
    """

    def __init__(
        self,
        repository: ProcessRepository,
        cleanup: Optional["CleanupScheduler"] = None,
        audit: Optional["AuditLog"] = None,
    ) -> None:
        self._repository = repository
        self._cleanup = cleanup
        self._audit = audit

    async def signal(
        self, correlation_key: str, outcome: Outcome | str, payload: Any = None
    ) -> bool:
        """Write the terminal state for ``correlation_key``.

        Returns:
            ``True`` when a PENDING record existed and this call transitioned
            it. The value is informational; a missing record or a duplicate
            signal is not an error. Store failures are logged and reported
            as ``False``, the waiter's deadline covers a lost completion.
        """
        outcome = Outcome(outcome)
        try:
            if outcome is Outcome.SUCCESS:
                write = await self._repository.complete(correlation_key, payload)
            else:
                payload = normalize_error(payload)
                write = await self._repository.fail(correlation_key, payload)
        except Exception as e:
            logger.error(
                f"Failed to record {outcome.value} for correlation_key={correlation_key}: {e}"
            )
            return False

        logger.info(
            f"Completion received for correlation_key={correlation_key}: "
            f"outcome={outcome.value} write={write.value}"
        )
        if write.wrote:
            if self._audit is not None:
                status = "DONE" if outcome is Outcome.SUCCESS else "ERROR"
                self._audit.record_later(
                    correlation_key, status.lower(), status=status, payload=payload
                )
            if self._cleanup is not None:
                self._cleanup.schedule(correlation_key)
        return write is TerminalWrite.TRANSITIONED
