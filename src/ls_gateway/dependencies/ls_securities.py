# Copyright (c)
# SPDX-License-Identifier: MIT
"""Dependency wiring for the LS Securities gateway.

Overview:
    Builds the single per-process :class:`LSSecuritiesGateway` from settings
    and a Redis client, and provides an async lifespan that owns the HTTP and
    Redis connections.

Layer:
    dependencies

Design:
    * One ``httpx.AsyncClient`` is shared by the token manager and the request
      executor; the lifespan closes it.
    * The rate limiter is created here, once, and lives inside the gateway.
    * No module-level singletons: callers keep the returned gateway.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from ls_gateway.adapters.gateways.ls_securities_gateway import LSSecuritiesGateway
from ls_gateway.config.settings import Settings, get_settings
from ls_gateway.infrastructure.caching.credential_store import RedisCredentialStore
from ls_gateway.infrastructure.caching.redis_client import RedisClient, create_redis_client
from ls_gateway.infrastructure.external_apis.ls_securities.client import LSClient
from ls_gateway.infrastructure.external_apis.ls_securities.settings import LSSecuritiesSettings
from ls_gateway.infrastructure.external_apis.ls_securities.token_manager import TokenManager
from ls_gateway.infrastructure.logging.logger import configure_root_logging, get_json_logger
from ls_gateway.infrastructure.resilience.rate_limiter import PerKeyRateLimiter

logger = get_json_logger(__name__)


def build_ls_gateway(
    settings: LSSecuritiesSettings,
    redis: RedisClient,
    *,
    http: httpx.AsyncClient | None = None,
) -> LSSecuritiesGateway:
    """Assemble the gateway.

    Args:
        settings: Provider settings.
        redis: Async Redis client backing the credential store.
        http: Shared HTTP client; one owned by the executor is created if omitted.

    Returns:
        LSSecuritiesGateway: Ready-to-use gateway.
    """
    client_http = http or httpx.AsyncClient(timeout=settings.timeout_s)
    store = RedisCredentialStore(redis)
    tokens = TokenManager(settings, store, client_http)
    limiter = PerKeyRateLimiter(settings.interval_s)
    client = LSClient(settings, tokens, limiter, http=client_http, owns_http=http is None)
    return LSSecuritiesGateway(client, tokens, settings)


@asynccontextmanager
async def ls_gateway_lifespan(
    settings: Settings | None = None,
    ls_settings: LSSecuritiesSettings | None = None,
) -> AsyncIterator[LSSecuritiesGateway]:
    """Build the gateway at startup and release its connections on exit.

    Args:
        settings: Process settings; ``get_settings()`` if omitted.
        ls_settings: Provider settings; read from ``LS_*`` env if omitted.

    Yields:
        LSSecuritiesGateway: The per-process gateway.
    """
    settings = settings or get_settings()
    configure_root_logging(settings.log_level)
    ls_settings = ls_settings or LSSecuritiesSettings()  # type: ignore[call-arg]

    redis = create_redis_client(settings)
    http = httpx.AsyncClient(timeout=ls_settings.timeout_s)
    gateway = build_ls_gateway(ls_settings, redis, http=http)
    logger.info("ls.gateway.started", extra={"environment": settings.environment.value})
    try:
        yield gateway
    finally:
        await gateway.aclose()
        await http.aclose()
        await redis.aclose()
        logger.info("ls.gateway.stopped")
