# src/ls_gateway/infrastructure/caching/redis_client.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Async Redis client factory."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Protocol, cast, runtime_checkable
from urllib.parse import urlparse, urlunparse

import redis.asyncio as aioredis

# -----------------------------------------------------------------------------
# Typed alias for the concrete Redis client.
# Some redis stubs make Redis generic (e.g., Redis[str]).
# -----------------------------------------------------------------------------
if TYPE_CHECKING:
    from redis.asyncio.client import Redis as _RedisGeneric

    AioredisRedis = _RedisGeneric[str]
else:
    from redis.asyncio.client import Redis as AioredisRedis  # type: ignore[assignment]

from ls_gateway.config.settings import Settings

__all__ = [
    "RedisClient",
    "create_redis_client",
]


@runtime_checkable
class RedisClient(Protocol):
    """Minimal async Redis protocol used by the gateway."""

    async def ping(self) -> Any: ...
    async def aclose(self) -> None: ...

    async def get(self, key: str) -> Any: ...
    async def set(
        self,
        key: str,
        value: Any,
        *,
        ex: int | None = None,
        px: int | None = None,
        nx: bool | None = None,
        xx: bool | None = None,
    ) -> Any: ...
    async def delete(self, *keys: str) -> Any: ...
    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any: ...


def _maybe_swap_hostname(url: str) -> str:
    """Point the docker-compose ``redis`` hostname at localhost outside CI."""
    try:
        parsed = urlparse(url)
        if parsed.hostname == "redis" and not os.getenv("CI"):
            host = "localhost"
            port = parsed.port or 6379
            if parsed.username and parsed.password:
                netloc = f"{parsed.username}:{parsed.password}@{host}:{port}"
            else:
                netloc = f"{host}:{port}"
            return urlunparse((parsed.scheme, netloc, parsed.path or "/0", "", "", ""))
    except Exception as exc:  # pragma: no cover
        logging.getLogger(__name__).debug(
            "redis url parse failed; keeping original url: %s", url, exc_info=exc
        )
    return url


def create_redis_client(settings: Settings) -> RedisClient:
    """Build the asyncio Redis client for the credential store.

    The client is owned by whoever calls this (normally the gateway lifespan)
    and must be closed with ``aclose()`` at shutdown.

    Args:
        settings: Process settings carrying the Redis URL and timeouts.

    Returns:
        A connected-on-demand ``redis.asyncio`` client with string responses.
    """
    url = _maybe_swap_hostname(str(settings.redis_url))
    # Untyped shim: redis stubs disagree on the signature of ``from_url``.
    _from_url: Any = aioredis.from_url
    client = _from_url(
        url=url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=settings.redis_health_check_interval_s,
        socket_timeout=settings.redis_socket_timeout_s,
        socket_connect_timeout=settings.redis_socket_connect_timeout_s,
    )
    return cast(RedisClient, cast(AioredisRedis, client))
