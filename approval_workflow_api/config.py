"""Pydantic-based configuration helpers for the approval workflow API."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator

_APP_ENVIRONMENTS = {"development", "test", "production"}


class AppSettings(BaseModel):
    """Settings required to serve the API and reach the persistence store."""

    database_url: str = Field(..., alias="DATABASE_URL")
    identity_signing_secret: str = Field(..., alias="IDENTITY_SIGNING_SECRET")
    app_env: str = Field("production", alias="APP_ENV")
    identity_tolerance_seconds: int = Field(300, alias="IDENTITY_TOLERANCE_SECONDS")
    store_timeout_seconds: int = Field(10, alias="STORE_TIMEOUT_SECONDS")
    api_prefix: str = Field("/api", alias="API_PREFIX")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("database_url", "identity_signing_secret")
    @classmethod
    def _ensure_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("app_env")
    @classmethod
    def _validate_env(cls, value: str) -> str:
        env = value.strip().lower()
        if env not in _APP_ENVIRONMENTS:
            raise ValueError("APP_ENV must be development, test or production")
        return env

    @field_validator("identity_tolerance_seconds", "store_timeout_seconds")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Timeouts must be greater than zero")
        return value

    @field_validator("api_prefix")
    @classmethod
    def _normalise_prefix(cls, value: str) -> str:
        trimmed = value.strip().strip("/")
        return f"/{trimmed}" if trimmed else ""

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{value}'")
        return level

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {_format_missing(missing)}"
            ) from exc
        invalid = [str(error["loc"][0]) for error in exc.errors()]
        raise RuntimeError(
            f"Invalid environment variables: {_format_missing(invalid)}"
        ) from exc
