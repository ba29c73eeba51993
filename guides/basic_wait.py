"""Simple example showing a synchronous wait on asynchronous work."""

import asyncio

from waitroom import Coordinator, Outcome, Waiter
from waitroom.engines import InMemoryEngineClient, StartedProcess
from waitroom.persistence import InMemoryProcessRepository


async def main():
    """Start a unit of work and wait for the engine to report back."""

    async def approve(process: StartedProcess):
        # stands in for the workflow engine calling the completion endpoint
        await asyncio.sleep(0.3)
        await coordinator.complete(
            process.correlation_key, Outcome.SUCCESS, {"approved": True}
        )

    repository = InMemoryProcessRepository()
    coordinator = Coordinator(
        repository,
        InMemoryEngineClient(on_start=approve),
        waiter=Waiter(repository, timeout_ms=2_000),
    )

    try:
        outcome = await coordinator.begin(
            "order-42", "approve-order", {"amount": 120, "currency": "EUR"}
        )
        if outcome.completed:
            print(f"✅ Process finished: {outcome.result}")
        else:
            print(f"⏳ Still running, poll the status endpoint for {outcome.correlation_key}")
    finally:
        await coordinator.close()


if __name__ == "__main__":
    asyncio.run(main())
