# Copyright (c)
# SPDX-License-Identifier: MIT
"""Gateway Configuration (Pydantic Settings, v2)

Summary:
    Typed, validated process configuration for the LS Securities gateway. This
    module centralizes environment parsing for the cross-cutting concerns
    (environment, Redis, logging). Provider-specific knobs live next to the
    provider client in ``infrastructure/external_apis/ls_securities/settings.py``.

Design:
    - Pydantic v2 BaseSettings with ``extra='forbid'`` to catch unknown env.
    - Explicit field declarations with constrained types and ranges.
    - Environment enumeration for behavior toggles (includes TEST).
    - Singleton accessor ``get_settings()`` with LRU cache.
    - Safe, structured logging (no secrets).
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Logical deployment environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    CI = "ci"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Typed process configuration.

    Infrastructure may read environment variables; other layers should receive
    this object through dependency injection.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Logical deployment environment.",
        validation_alias="ENVIRONMENT",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL of the credential store shared by all replicas.",
        validation_alias="REDIS_URL",
    )
    redis_health_check_interval_s: int = Field(
        default=15,
        ge=1,
        le=3600,
        description="Health check interval for Redis clients in seconds.",
        validation_alias="REDIS_HEALTH_CHECK_INTERVAL_S",
    )
    redis_socket_timeout_s: float = Field(
        default=3.0,
        ge=0.1,
        le=60.0,
        description="Socket timeout in seconds for Redis commands.",
        validation_alias="REDIS_SOCKET_TIMEOUT_S",
    )
    redis_socket_connect_timeout_s: float = Field(
        default=3.0,
        ge=0.1,
        le=60.0,
        description="Socket connect timeout in seconds for Redis.",
        validation_alias="REDIS_SOCKET_CONNECT_TIMEOUT_S",
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level.",
        validation_alias="LOG_LEVEL",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
        case_sensitive=False,
    )

    @property
    def is_test(self) -> bool:
        """Return True for hermetic test/CI runs."""
        return self.environment in (Environment.TEST, Environment.CI)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton `Settings` instance.

    Returns:
        Settings: Validated process settings.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    try:
        settings = Settings()
    except ValidationError as exc:
        logger.error("Invalid configuration", extra={"errors": exc.errors()})
        raise RuntimeError("Invalid configuration") from exc

    logger.info(
        "Settings initialized",
        extra={
            "environment": settings.environment.value,
            "redis_url_set": bool(settings.redis_url),
            "log_level": settings.log_level,
        },
    )
    return settings
