"""Engine client factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import WaitroomConfig, load_config
from .base import BaseEngineClient, StartedProcess
from .inmemory import InMemoryEngineClient


def get_engine_client(
    backend: Optional[str] = None, config: Optional[WaitroomConfig] = None
) -> BaseEngineClient:
    """Factory function to get the configured engine client."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("WAITROOM_ENGINE")
        or config.engine.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryEngineClient()
    elif backend == "camunda":
        from .camunda import CamundaEngineClient

        camunda_conf = config.engine.camunda
        return CamundaEngineClient(
            base_url=camunda_conf.base_url,
            request_timeout=camunda_conf.request_timeout_s,
        )
    else:
        raise ValueError(f"Unsupported engine backend: {backend}")


__all__ = ["BaseEngineClient", "InMemoryEngineClient", "StartedProcess", "get_engine_client"]
