"""Application configuration and the process-wide configuration holder."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import NotInitializedError
from .logging_config import get_logger

logger = get_logger(__name__)

LogLevel = Literal["debug", "info", "warn", "error", "silent"]

APP_STAGES = ("prod", "dev", "devMock")


class AppConfig(BaseModel):
    """Centralized application configuration. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    base_path: str = Field(default="", description="Path prefix the app is served under")
    log_level: Optional[LogLevel] = Field(default=None)
    spotify_client_id: str = Field(..., description="SPOTIFY_CLIENT_ID value")
    redirect_uri: str = Field(default="http://127.0.0.1:8000/callback")
    max_segment_seconds: float = Field(default=10)
    token_refresh_buffer_minutes: int = Field(default=15)
    max_token_ttl_seconds: Optional[int] = Field(default=None, description="Caps token and mock session lifetime")
    mock_auth: bool = Field(default=False, description="Build mock services instead of real ones")
    storage_path: Optional[Path] = Field(default=None, description="JSON key/value file; in-memory when unset")
    http_timeout_ms: int = Field(default=8000)
    enable_retry: bool = Field(default=True)

    @field_validator("base_path", "spotify_client_id", "redirect_uri")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("spotify_client_id")
    @classmethod
    def _ensure_client_id(cls, value: str) -> str:
        if not value:
            raise ValueError("spotify_client_id must be a non-empty string")
        return value

    @field_validator("redirect_uri")
    @classmethod
    def _ensure_redirect_uri(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("redirect_uri must be a valid http(s) URL")
        return value

    @field_validator("max_segment_seconds")
    @classmethod
    def _ensure_segment(cls, value: float) -> float:
        if value <= 0 or value > 30:
            raise ValueError("max_segment_seconds must be greater than 0 and at most 30")
        return value

    @field_validator("token_refresh_buffer_minutes")
    @classmethod
    def _ensure_refresh_buffer(cls, value: int) -> int:
        if value < 1 or value > 60:
            raise ValueError("token_refresh_buffer_minutes must be a number between 1 and 60")
        return value

    @field_validator("max_token_ttl_seconds")
    @classmethod
    def _ensure_ttl(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            return None
        return value


def load_app_config() -> AppConfig:
    """Build the configuration from environment variables (and a .env file)."""

    from dotenv import load_dotenv

    load_dotenv()

    stage = os.getenv("WALKUP_APP_STAGE")
    if not stage:
        raise ValueError("WALKUP_APP_STAGE environment variable is required.")
    if stage not in APP_STAGES:
        raise ValueError(f"Unknown app stage: {stage}. Supported stages: {', '.join(APP_STAGES)}")

    def _optional_int(name: str) -> Optional[int]:
        raw = os.getenv(name)
        return int(raw) if raw else None

    storage_path = os.getenv("WALKUP_STORAGE_PATH")

    return AppConfig(
        base_path=os.getenv("WALKUP_BASE_PATH", ""),
        log_level=os.getenv("WALKUP_LOG_LEVEL") or None,
        spotify_client_id=os.getenv("SPOTIFY_CLIENT_ID", "REPLACE_ME_IN_.env"),
        redirect_uri=os.getenv("WALKUP_REDIRECT_URI", "http://127.0.0.1:8000/callback"),
        max_segment_seconds=float(os.getenv("WALKUP_MAX_SEGMENT_SECONDS", "10")),
        token_refresh_buffer_minutes=int(os.getenv("WALKUP_TOKEN_REFRESH_BUFFER_MINUTES", "15")),
        max_token_ttl_seconds=_optional_int("WALKUP_MAX_TOKEN_TTL_SECONDS"),
        mock_auth=stage == "devMock",
        storage_path=Path(storage_path) if storage_path else None,
        http_timeout_ms=int(os.getenv("WALKUP_HTTP_TIMEOUT_MS", "8000")),
        enable_retry=os.getenv("WALKUP_ENABLE_RETRY", "true").lower() == "true",
    )


class ConfigHolder:
    """Write-once cell for the application's AppConfig.

    The first ``initialize`` wins; later calls only log a warning. ``reset``
    exists for test isolation and empties the cell without touching
    references callers already hold.
    """

    def __init__(self) -> None:
        self._config: Optional[AppConfig] = None
        self._initialized = False

    def initialize(self, config: AppConfig) -> None:
        if self._initialized:
            logger.warning("AppConfig is already initialized. Skipping re-initialization.")
            return
        self._config = config
        self._initialized = True
        logger.debug(f"AppConfig initialized (mock_auth={config.mock_auth})")

    def get(self) -> AppConfig:
        if self._config is None or not self._initialized:
            raise NotInitializedError(
                "AppConfig has not been initialized. "
                "Call ConfigHolder.initialize(config) at application startup before using the config."
            )
        return self._config

    def reset(self) -> None:
        self._config = None
        self._initialized = False

    def is_initialized(self) -> bool:
        return self._initialized


# Process-wide default used by the application
config_holder = ConfigHolder()
