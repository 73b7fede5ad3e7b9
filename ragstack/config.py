"""Configuration loader — reads an optional YAML file, validates with Pydantic.

The YAML file (``RAGSTACK_CONFIG``, default ``config.yaml``) holds the
stack, database, Ollama and RAG settings. Two environment variables always
win over the file:

    config_dir   — working directory of the compose definition (required
                   per request, checked before any side effect)
    docker_exec  — compose executable, defaults to ``podman``
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, field_validator

from ragstack.errors import ConfigurationFault

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "podman"


class StackConfig(BaseModel):
    """How to drive the backing stack through the compose tool."""

    working_directory: str | None = None
    executable: str = DEFAULT_EXECUTABLE
    compose_command: list[str] = ["compose"]
    db_service: str = "db"
    ollama_service: str = "ollama"
    log_services: list[str] = ["db", "ollama"]
    poll_interval: float = 3.0   # seconds between health polls
    probe_attempts: int = 1      # initial probe before log tailing starts
    max_try: int = 20            # long-running probe budget

    @field_validator("probe_attempts", "max_try")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("poll budgets must be at least 1")
        return v


class DatabaseConfig(BaseModel):
    """Connection settings for the Oracle database service."""

    user: str = "SYS"
    password: str = "oracle"
    dsn: str = "0.0.0.0:1521/FREEPDB1"
    sysdba: bool = True
    vector_table: str = "vectorTab"
    loaders_table: str = "loaders"
    conversations_table: str = "conversations"
    loader_custom_data_table: str = "loaderCustomData"


class OllamaConfig(BaseModel):
    """Local inference server settings."""

    base_url: str = "http://localhost:11434"
    keepalive: str = "10m"
    temperature: float = 0.0
    timeout: float = 300.0


class RagConfig(BaseModel):
    """Retrieval settings and which storage backend to build."""

    storage: Literal["oracle", "memory"] = "oracle"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    search_result_count: int = 7


class Settings(BaseModel):
    """Top-level service configuration."""

    stack: StackConfig = StackConfig()
    database: DatabaseConfig = DatabaseConfig()
    ollama: OllamaConfig = OllamaConfig()
    rag: RagConfig = RagConfig()
    allowed_origins: list[str] = ["*"]

    def require_working_directory(self) -> str:
        """Return the compose working directory. Raises ConfigurationFault if unset."""
        if not self.stack.working_directory:
            raise ConfigurationFault("config_dir must be specified")
        return self.stack.working_directory

    def public_view(self) -> dict:
        """Config as JSON with secrets redacted."""
        data = self.model_dump()
        data["database"]["password"] = "***"
        return data


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: Settings | None = None
_config_path: str | None = None


def _apply_environment(raw: dict) -> dict:
    stack = dict(raw.get("stack") or {})
    config_dir = os.environ.get("config_dir")
    if config_dir:
        stack["working_directory"] = config_dir
    docker_exec = os.environ.get("docker_exec")
    if docker_exec:
        stack["executable"] = docker_exec
    return {**raw, "stack": stack}


def load_config(path: str | None = None) -> Settings:
    """Read the YAML file (if present) plus environment overrides, validate, and cache."""
    global _config, _config_path
    _config_path = path or os.environ.get("RAGSTACK_CONFIG", "config.yaml")

    config_file = Path(_config_path)
    raw: dict = {}
    if config_file.exists():
        raw = yaml.safe_load(config_file.read_text()) or {}
    else:
        logger.info(f"No config file at {config_file.resolve()}, using defaults")

    _config = Settings(**_apply_environment(raw))

    logger.info(
        f"Loaded config: executable={_config.stack.executable}, "
        f"working_directory={_config.stack.working_directory}, "
        f"storage={_config.rag.storage}"
    )
    return _config


def get_config() -> Settings:
    """Return cached config, loading it on first use."""
    if _config is None:
        return load_config()
    return _config


def reload_config() -> Settings:
    """Re-read config from disk and environment. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
