import pytest

import waitroom.persistence as persistence
from waitroom import Coordinator, Waiter
from waitroom.cleanup import CleanupScheduler
from waitroom.engines import InMemoryEngineClient
from waitroom.persistence import InMemoryProcessRepository


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep tests independent of any config file or env in the shell."""
    monkeypatch.setenv("WAITROOM_CONFIG", str(tmp_path / "missing.yaml"))
    for name in (
        "WAITROOM_DATABASE_URL",
        "DATABASE_URL",
        "WAITROOM_AUDIT_DATABASE_URL",
        "WAITROOM_SYNC_TIMEOUT_MS",
        "WAITROOM_ENGINE",
        "WAITROOM_LOG_LEVEL",
        "CAMUNDA_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


@pytest.fixture
def make_coordinator():
    """Build a coordinator over an in-memory store with short timings."""

    def factory(
        repository=None,
        engine=None,
        timeout_ms=200,
        grace_ms=5_000,
        poll_floor_ms=50,
        poll_ceiling_ms=1_000,
        audit=None,
    ) -> Coordinator:
        repository = repository or InMemoryProcessRepository()
        return Coordinator(
            repository,
            engine or InMemoryEngineClient(),
            waiter=Waiter(
                repository,
                timeout_ms=timeout_ms,
                poll_floor_ms=poll_floor_ms,
                poll_ceiling_ms=poll_ceiling_ms,
            ),
            cleanup=CleanupScheduler(repository, grace_ms=grace_ms, audit=audit),
            audit=audit,
        )

    return factory
