"""Persistence layer for waitroom process state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import WaitroomConfig, load_config
from .inmemory import InMemoryProcessRepository
from .models import ProcessRecord, ProcessStatus, TerminalWrite, normalize_error
from .repository import ProcessRepository
from .sqlite import SQLiteProcessRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresProcessRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresProcessRepository = None  # type: ignore

_repository_instance: ProcessRepository | None = None


def _build_repository(database_url: Optional[str], config: WaitroomConfig) -> ProcessRepository:
    """Instantiate the backend matching the scheme of ``database_url``."""
    read_timeout = config.wait.read_timeout_ms / 1000
    store = config.store

    if not database_url:
        return InMemoryProcessRepository()
    scheme, _, rest = database_url.partition("://")
    if scheme == "sqlite":
        return SQLiteProcessRepository(
            rest,
            read_timeout=read_timeout,
            write_timeout=store.write_timeout_ms / 1000,
        )
    if scheme in ("postgres", "postgresql"):
        if PostgresProcessRepository is None:
            raise RuntimeError("Postgres support not available")
        return PostgresProcessRepository(
            database_url,
            read_timeout=read_timeout,
            min_size=store.pool_min_size,
            max_size=store.pool_max_size,
        )
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[WaitroomConfig] = None
) -> ProcessRepository:
    """Return the process repository shared by this process.

    ``database_url`` wins over ``WAITROOM_DATABASE_URL``/``DATABASE_URL``,
    which win over the loaded configuration. Without any URL the store is
    in-memory and only coordinates waiters and completers living in the
    same process. Store timeouts and pool sizes come from ``config.wait``
    and ``config.store``. Calling with no arguments returns the cached
    instance once one exists.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("WAITROOM_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )
    _repository_instance = _build_repository(database_url, config)
    return _repository_instance


__all__ = [
    "ProcessRecord",
    "ProcessStatus",
    "ProcessRepository",
    "SQLiteProcessRepository",
    "TerminalWrite",
    "PostgresProcessRepository",
    "InMemoryProcessRepository",
    "get_repository",
    "normalize_error",
]
