"""Example of two coordinators sharing one SQLite store.

The first coordinator stands in for the instance serving the request, the
second for the instance that receives the engine's completion call. Nothing
is shared between them except the database file.
"""

import asyncio
import tempfile
from pathlib import Path

from waitroom import Coordinator, Waiter
from waitroom.engines import InMemoryEngineClient
from waitroom.persistence import SQLiteProcessRepository


async def main():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "waitroom.db"

        front_store = SQLiteProcessRepository(db_path)
        front = Coordinator(
            front_store,
            InMemoryEngineClient(),
            waiter=Waiter(front_store, timeout_ms=3_000),
        )
        back = Coordinator(SQLiteProcessRepository(db_path), InMemoryEngineClient())

        async def engine_callback():
            await asyncio.sleep(0.5)
            await back.complete("invoice-7", "success", {"paid": True})

        try:
            outcome, _ = await asyncio.gather(
                front.begin("invoice-7", "collect-payment"), engine_callback()
            )
            print(f"📋 {outcome.correlation_key}: completed={outcome.completed}")
            print(f"🔗 Result: {outcome.result}")
        finally:
            await back.close()
            await front.close()


if __name__ == "__main__":
    asyncio.run(main())
