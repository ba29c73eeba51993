import asyncio
import time

import httpx
import pytest

from waitroom import EngineError, Outcome
from waitroom.api import create_app
from waitroom.engines import InMemoryEngineClient
from waitroom.engines.camunda import CamundaEngineClient
from waitroom.persistence import ProcessStatus


def _client(coordinator) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=create_app(coordinator))
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _start_body(key: str, **inputs) -> dict:
    return {"correlation_key": key, "work_descriptor": "approve-order", "inputs": inputs}


@pytest.mark.asyncio
async def test_completion_during_wait_returns_result(make_coordinator):
    async def finish(process):
        await asyncio.sleep(0.05)
        await coordinator.complete(process.correlation_key, Outcome.SUCCESS, {"x": 1})

    engine = InMemoryEngineClient(on_start=finish)
    coordinator = make_coordinator(engine=engine, timeout_ms=500)
    try:
        async with _client(coordinator) as client:
            start = time.monotonic()
            response = await client.post("/api/process/start", json=_start_body("K1", amount=3))
            elapsed = time.monotonic() - start
    finally:
        await coordinator.close()

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "correlation_key": "K1", "result": {"x": 1}}
    assert elapsed < 0.3
    assert engine.started[0].variables == {"amount": 3}


@pytest.mark.asyncio
async def test_timeout_then_late_completion(make_coordinator):
    coordinator = make_coordinator(timeout_ms=200)
    try:
        async with _client(coordinator) as client:
            start = time.monotonic()
            response = await client.post("/api/process/start", json=_start_body("K2"))
            elapsed = time.monotonic() - start

            assert response.status_code == 202
            body = response.json()
            assert body["status"] == "pending"
            assert body["correlation_key"] == "K2"
            assert body["status_url"] == "/api/process/status/K2"
            assert 0.19 <= elapsed < 0.45

            status = await client.get(body["status_url"])
            assert status.status_code == 202
            assert status.json()["status"] == "pending"

            completed = await client.post(
                "/api/process/complete",
                json={"correlation_key": "K2", "outcome": "success", "payload": {"y": 2}},
            )
            assert completed.status_code == 200
            assert completed.json() == {"received": True, "transitioned": True}

            status = await client.get(body["status_url"])
            assert status.status_code == 200
            assert status.json()["status"] == "done"
            assert status.json()["result"] == {"y": 2}
    finally:
        await coordinator.close()


@pytest.mark.asyncio
async def test_duplicate_submissions_share_one_record(make_coordinator):
    async def finish(process):
        await asyncio.sleep(0.1)
        await coordinator.complete(process.correlation_key, Outcome.SUCCESS, {"z": 3})

    engine = InMemoryEngineClient(on_start=finish)
    coordinator = make_coordinator(engine=engine, timeout_ms=1_000)
    try:
        async with _client(coordinator) as client:
            responses = await asyncio.gather(
                client.post("/api/process/start", json=_start_body("K3")),
                client.post("/api/process/start", json=_start_body("K3")),
            )
            listing = await client.get("/api/process/status")
    finally:
        await coordinator.close()

    assert [r.status_code for r in responses] == [200, 200]
    assert all(r.json()["result"] == {"z": 3} for r in responses)
    assert len(engine.started) == 1
    assert listing.json()["count"] == 1


@pytest.mark.asyncio
async def test_failed_process_returns_500(make_coordinator):
    async def reject(process):
        await asyncio.sleep(0.05)
        await coordinator.complete(
            process.correlation_key, Outcome.FAILURE, {"message": "credit check failed"}
        )

    coordinator = make_coordinator(engine=InMemoryEngineClient(on_start=reject), timeout_ms=500)
    try:
        async with _client(coordinator) as client:
            response = await client.post("/api/process/start", json=_start_body("K4"))
            status = await client.get("/api/process/status/K4")
    finally:
        await coordinator.close()

    assert response.status_code == 500
    assert response.json() == {
        "status": "error",
        "correlation_key": "K4",
        "error": {"message": "credit check failed"},
    }
    assert status.status_code == 500
    assert status.json()["error"] == {"message": "credit check failed"}


@pytest.mark.asyncio
async def test_trigger_failure_marks_record_failed(make_coordinator):
    engine = InMemoryEngineClient(fail_with=EngineError("engine unavailable"))
    coordinator = make_coordinator(engine=engine, timeout_ms=500)
    try:
        async with _client(coordinator) as client:
            response = await client.post("/api/process/start", json=_start_body("K5"))
            retry = await client.post("/api/process/start", json=_start_body("K5"))
            status = await client.get("/api/process/status/K5")
    finally:
        await coordinator.close()

    assert response.status_code == 500
    assert response.json()["error"] == {"message": "engine unavailable"}
    # the resubmission joins the failed record instead of triggering again
    assert retry.status_code == 500
    assert retry.json()["error"] == {"message": "engine unavailable"}
    assert status.json()["status"] == "error"


@pytest.mark.asyncio
async def test_complete_is_always_200(make_coordinator):
    coordinator = make_coordinator()
    try:
        async with _client(coordinator) as client:
            unknown = await client.post(
                "/api/process/complete",
                json={"correlation_key": "nobody", "outcome": "failure"},
            )
            duplicate = await client.post(
                "/api/process/complete",
                json={"correlation_key": "nobody", "outcome": "success", "payload": 1},
            )
            status = await client.get("/api/process/status/nobody")
    finally:
        await coordinator.close()

    assert unknown.status_code == 200
    assert unknown.json() == {"received": True, "transitioned": False}
    assert duplicate.status_code == 200
    assert duplicate.json()["transitioned"] is False
    # the first terminal write stays
    assert status.json()["error"] == {"message": "Unknown error"}


@pytest.mark.asyncio
async def test_status_not_found_and_health(make_coordinator):
    coordinator = make_coordinator()
    await coordinator.repository.upsert_pending("busy")
    try:
        async with _client(coordinator) as client:
            missing = await client.get("/api/process/status/ghost")
            health = await client.get("/health")
    finally:
        await coordinator.close()

    assert missing.status_code == 404
    assert missing.json()["status"] == "not_found"
    assert health.json() == {"status": "ok", "pending": 1}


@pytest.mark.asyncio
async def test_status_gone_after_cleanup(make_coordinator):
    coordinator = make_coordinator(grace_ms=100)
    await coordinator.repository.upsert_pending("K6")
    try:
        async with _client(coordinator) as client:
            await client.post(
                "/api/process/complete",
                json={"correlation_key": "K6", "outcome": "success", "payload": {"ok": True}},
            )
            right_after = await client.get("/api/process/status/K6")
            await asyncio.sleep(0.3)
            later = await client.get("/api/process/status/K6")
    finally:
        await coordinator.close()

    assert right_after.status_code == 200
    assert later.status_code == 404


@pytest.mark.asyncio
async def test_invalid_requests_are_rejected(make_coordinator):
    coordinator = make_coordinator()
    try:
        async with _client(coordinator) as client:
            no_key = await client.post(
                "/api/process/start", json={"correlation_key": "", "work_descriptor": "x"}
            )
            bad_outcome = await client.post(
                "/api/process/complete", json={"correlation_key": "K", "outcome": "maybe"}
            )
    finally:
        await coordinator.close()

    assert no_key.status_code == 422
    assert bad_outcome.status_code == 422


@pytest.mark.asyncio
async def test_malformed_engine_reply_fails_the_record(make_coordinator):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy ok</html>")

    engine_http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    engine = CamundaEngineClient("http://camunda/engine-rest", client=engine_http)
    coordinator = make_coordinator(engine=engine, timeout_ms=500)
    try:
        async with _client(coordinator) as client:
            response = await client.post("/api/process/start", json=_start_body("P1"))
            retry = await client.post("/api/process/start", json=_start_body("P1"))
        record = await coordinator.status("P1")
    finally:
        await coordinator.close()
        await engine_http.aclose()

    assert response.status_code == 500
    body = response.json()
    assert body["status"] == "error"
    assert body["correlation_key"] == "P1"
    assert "Unexpected Camunda response" in body["error"]["message"]
    assert record.status is ProcessStatus.ERROR
    assert retry.status_code == 500
    assert retry.json()["error"] == body["error"]
