"""Camunda REST engine client."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import httpx

from ..errors import EngineError
from .base import BaseEngineClient, StartedProcess

logger = logging.getLogger(__name__)

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def to_engine_variable(value: Any) -> Dict[str, Any]:
    """Wrap a Python value in a typed Camunda variable."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"value": value, "type": "Boolean"}
    if isinstance(value, int):
        kind = "Integer" if _INT32_MIN <= value <= _INT32_MAX else "Long"
        return {"value": value, "type": kind}
    if isinstance(value, float):
        return {"value": value, "type": "Double"}
    if isinstance(value, str):
        return {"value": value, "type": "String"}
    if value is None:
        return {"value": None, "type": "Null"}
    return {"value": json.dumps(value), "type": "Json"}


def build_variables(
    correlation_key: str, inputs: Optional[Dict[str, Any]] = None
) -> Dict[str, Dict[str, Any]]:
    """Build the start variables, including per-request execution ids."""
    application_id = str(uuid.uuid4())
    variables = {key: to_engine_variable(value) for key, value in (inputs or {}).items()}
    # execution context wins over caller inputs of the same name
    variables.update(
        {
            "correlationId": to_engine_variable(correlation_key),
            "batch_id": to_engine_variable(str(uuid.uuid4())),
            "traceability_id": to_engine_variable(str(uuid.uuid4())),
            "application_id": to_engine_variable(application_id),
            "identifiers": to_engine_variable({"applicationId": application_id}),
        }
    )
    return variables


class CamundaEngineClient(BaseEngineClient):
    """Start process instances through the Camunda REST API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080/engine-rest",
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.request_timeout)

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def start_process(
        self,
        work_descriptor: str,
        correlation_key: str,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> StartedProcess:
        if self._client is None:
            await self.connect()

        url = f"{self.base_url}/process-definition/key/{work_descriptor}/start"
        variables = build_variables(correlation_key, inputs)
        body = {"businessKey": correlation_key, "variables": variables}

        try:
            response = await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise EngineError(f"Failed to start Camunda process: {e}") from e

        if response.status_code != 200:
            raise EngineError(
                f"Camunda API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            instance_id = str(data["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise EngineError(
                f"Unexpected Camunda response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

        logger.info(
            f"Process {work_descriptor} started in Camunda for correlation_key={correlation_key}: "
            f"instance={instance_id}"
        )
        return StartedProcess(
            id=instance_id,
            work_descriptor=work_descriptor,
            correlation_key=correlation_key,
            definition_id=data.get("definitionId"),
            variables=variables,
        )
