import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..coordinator import Coordinator
from ..errors import EngineError, ProcessFailedError, StoreError
from ..persistence import ProcessRecord, ProcessStatus
from .models import (
    CompleteRequest,
    CompleteResponse,
    ErrorResponse,
    HealthResponse,
    PendingResponse,
    ResultResponse,
    StartRequest,
    StatusListResponse,
    StatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/process")
health_router = APIRouter()

_STATUS_CODES = {
    ProcessStatus.DONE: 200,
    ProcessStatus.PENDING: 202,
    ProcessStatus.ERROR: 500,
}


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def _respond(status_code: int, body: BaseModel) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _status_body(record: ProcessRecord) -> StatusResponse:
    return StatusResponse(
        status=record.status.value.lower(),
        correlation_key=record.correlation_key,
        result=record.result_payload,
        error=record.error_payload,
        started_at=record.started_at,
        updated_at=record.updated_at,
    )


@router.post("/start")
async def start_process(
    payload: StartRequest, request: Request, coordinator: Coordinator = Depends(get_coordinator)
):
    key = payload.correlation_key
    try:
        outcome = await coordinator.begin(key, payload.work_descriptor, payload.inputs)
    except ProcessFailedError as e:
        return _respond(500, ErrorResponse(correlation_key=key, error=e.error))
    except (EngineError, StoreError) as e:
        return _respond(500, ErrorResponse(correlation_key=key, error={"message": str(e)}))

    if outcome.completed:
        return _respond(200, ResultResponse(correlation_key=key, result=outcome.result))
    status_url = request.app.url_path_for("get_status", correlation_key=key)
    return _respond(202, PendingResponse(correlation_key=key, status_url=str(status_url)))


@router.post("/complete", response_model=CompleteResponse)
async def complete_process(
    payload: CompleteRequest, coordinator: Coordinator = Depends(get_coordinator)
):
    # always 200 so the engine's retry policy cannot loop on this endpoint
    transitioned = await coordinator.complete(
        payload.correlation_key, payload.outcome, payload.payload
    )
    return CompleteResponse(transitioned=transitioned)


@router.get("/status", response_model=StatusListResponse)
async def list_status(coordinator: Coordinator = Depends(get_coordinator)):
    records = await coordinator.list_processes()
    return StatusListResponse(
        count=len(records), processes=[_status_body(r) for r in records]
    )


@router.get("/status/{correlation_key}", name="get_status")
async def get_status(correlation_key: str, coordinator: Coordinator = Depends(get_coordinator)):
    record = await coordinator.status(correlation_key)
    if record is None:
        return _respond(404, StatusResponse(status="not_found", correlation_key=correlation_key))
    return _respond(_STATUS_CODES[record.status], _status_body(record))


@health_router.get("/health", response_model=HealthResponse)
async def health(coordinator: Coordinator = Depends(get_coordinator)):
    return HealthResponse(pending=await coordinator.pending_count())
