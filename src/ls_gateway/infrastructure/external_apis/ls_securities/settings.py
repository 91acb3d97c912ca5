# Copyright (c)
# SPDX-License-Identifier: MIT
"""Pydantic settings for the LS Securities transport client."""

from __future__ import annotations

import math
from typing import Final

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Endpoint-family paths (POST targets; the TR code travels in the ``tr_cd`` header).
PATH_MARKET_DATA: Final[str] = "/stock/market-data"
PATH_INVEST_INFO: Final[str] = "/stock/investinfo"
PATH_SECTOR: Final[str] = "/stock/sector"


def _default_auth_failure_codes() -> list[str]:
    """Application codes the API uses for an invalid or expired token."""
    return ["IGW00121"]


class LSSecuritiesSettings(BaseSettings):
    """Configuration for the LS Securities Open API gateway.

    Environment variables (with ``model_config.env_prefix``):

    * ``LS_BASE_URL``
    * ``LS_APP_KEY`` / ``LS_SECRET_KEY``
    * ``LS_TIMEOUT_S`` / ``LS_TOKEN_TIMEOUT_S``
    * ``LS_TOKEN_REFRESH_BUFFER_S``
    * ``LS_LOCK_TTL_MS`` / ``LS_LOCK_RETRY_DELAY_MS`` / ``LS_LOCK_MAX_RETRIES``
    * ``LS_RATE_LIMIT_DEFAULT_MS`` / ``LS_RATE_LIMIT_MS`` (JSON, e.g. ``{"t1533": 1000}``)
    * ``LS_AUTH_FAILURE_CODES`` (JSON list)
    * ``LS_MAX_PAGES`` / ``LS_COLLECT_MAX_PAGES``
    """

    base_url: str = Field(
        "https://openapi.ls-sec.co.kr:8080",
        description="Base URL for the LS Securities Open API.",
    )
    app_key: SecretStr = Field(..., description="LS Securities app key.")
    secret_key: SecretStr = Field(..., description="LS Securities app secret key.")

    token_path: str = Field("/oauth2/token", description="OAuth2 token endpoint path.")
    token_scope: str = Field("oob", description="OAuth2 scope requested with the token.")
    token_timeout_s: float = Field(5.0, gt=0, description="Timeout of token endpoint calls.")

    timeout_s: float = Field(10.0, gt=0, description="Default per-request timeout in seconds.")

    token_refresh_buffer_s: float = Field(
        30 * 60,
        ge=0,
        description="Refresh the token when it expires within this many seconds.",
    )
    lock_ttl_ms: int = Field(10_000, gt=0, description="TTL of the token refresh lock.")
    lock_retry_delay_ms: int = Field(
        100, gt=0, description="Poll interval while another process refreshes."
    )
    lock_max_retries: int | None = Field(
        None,
        gt=0,
        description="Poll bound; derived from the lock TTL when unset.",
    )

    token_key: str = Field("securities:ls:token", description="Credential store key of the token.")
    lock_key: str = Field(
        "securities:ls:token:lock", description="Credential store key of the refresh lock."
    )

    rate_limit_default_ms: int = Field(
        1000, ge=0, description="Minimum interval between calls of an unconfigured TR code."
    )
    rate_limit_ms: dict[str, int] = Field(
        default_factory=dict,
        description="Minimum interval per TR code, in milliseconds.",
    )

    auth_failure_codes: list[str] = Field(
        default_factory=_default_auth_failure_codes,
        description="rsp_cd values meaning the bearer token was rejected.",
    )

    max_pages: int = Field(100, gt=0, description="Default page bound for continuation queries.")
    collect_max_pages: int = Field(10, gt=0, description="Default page bound for collect_all.")

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_prefix="LS_",
        extra="ignore",
    )

    @property
    def effective_lock_max_retries(self) -> int:
        """Poll bound while waiting on another refresh holder.

        Defaults to enough polls to outlast the lock TTL, after which the lock
        has expired and a stuck holder can no longer be the reason to wait.
        """
        if self.lock_max_retries is not None:
            return self.lock_max_retries
        return max(1, math.ceil(self.lock_ttl_ms / self.lock_retry_delay_ms))

    def interval_s(self, operation_code: str) -> float:
        """Return the minimum call interval of ``operation_code`` in seconds."""
        return self.rate_limit_ms.get(operation_code, self.rate_limit_default_ms) / 1000.0
