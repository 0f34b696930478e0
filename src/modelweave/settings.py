"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the modelweave engine and REST API server.

    Values are read from environment variables and from a ``.env`` file
    in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # REST API
    api_server_host: str = "localhost"
    api_server_port: int = 8000
    port: int | None = None  # Cloud Run injects PORT; takes precedence over api_server_port
    max_body_bytes: int = 1 * 1024 * 1024

    @property
    def effective_port(self) -> int:
        """Return the port to listen on (Cloud Run PORT takes precedence)."""
        return self.port if self.port is not None else self.api_server_port

    # Execution
    sub_query_timeout_seconds: float = 30.0
    join_timeout_seconds: float = 60.0
    connector_timeout_seconds: float = 10.0
    connector_retries: int = 1

    # Compilation
    default_dialect: str = "postgres"
    expression_cleanup: Literal["rewrite", "reject"] = "rewrite"

    # Join discovery
    min_join_confidence: float = 0.3

    # Sources registered at API start-up: source id -> SQLite database path
    sqlite_sources: dict[str, str] = {}
