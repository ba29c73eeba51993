from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel


class WaitConfig(BaseModel):
    """Wait engine timing, in milliseconds."""

    timeout_ms: int = 25_000
    poll_floor_ms: int = 50
    poll_ceiling_ms: int = 1_000
    read_timeout_ms: int = 200


class StoreConfig(BaseModel):
    """State store connection settings."""

    write_timeout_ms: int = 5_000
    pool_min_size: int = 1
    pool_max_size: int = 10


class CleanupConfig(BaseModel):
    """Delay before terminal records leave the fast-path store."""

    grace_ms: int = 5_000


class CamundaConfig(BaseModel):
    """Connection settings for the Camunda REST API."""

    base_url: str = "http://localhost:8080/engine-rest"
    request_timeout_s: float = 10.0


class EngineConfig(BaseModel):
    """External workflow engine settings."""

    backend: Literal["inmemory", "camunda"] = "inmemory"
    camunda: CamundaConfig = CamundaConfig()


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8080


class WaitroomConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    audit_database_url: Optional[str] = None
    log_level: str = "INFO"
    store: StoreConfig = StoreConfig()
    wait: WaitConfig = WaitConfig()
    cleanup: CleanupConfig = CleanupConfig()
    engine: EngineConfig = EngineConfig()
    server: ServerConfig = ServerConfig()


def load_config(path: Optional[str] = None) -> WaitroomConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to WAITROOM_CONFIG env
            variable or 'waitroom.yaml' in the current directory.

    Environment variables take precedence over values read from the file.
    """

    config_path = path or os.getenv("WAITROOM_CONFIG", "waitroom.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = WaitroomConfig(**data)
    else:
        config = WaitroomConfig()

    env_db_url = os.getenv("WAITROOM_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_audit_url = os.getenv("WAITROOM_AUDIT_DATABASE_URL")
    if env_audit_url:
        config.audit_database_url = env_audit_url
    env_timeout = os.getenv("WAITROOM_SYNC_TIMEOUT_MS")
    if env_timeout:
        config.wait.timeout_ms = int(env_timeout)
    env_engine = os.getenv("WAITROOM_ENGINE")
    if env_engine:
        config.engine.backend = env_engine.lower()
    env_camunda_url = os.getenv("CAMUNDA_BASE_URL")
    if env_camunda_url:
        config.engine.camunda.base_url = env_camunda_url
    env_log_level = os.getenv("WAITROOM_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
