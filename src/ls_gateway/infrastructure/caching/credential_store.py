# src/ls_gateway/infrastructure/caching/credential_store.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Credential Store (Redis-backed).

Synopsis:
    Implements the :class:`CredentialStore` Protocol on top of an async Redis
    client. Holds the shared bearer token and the token-refresh lock.

Design:
    * ``set_if_absent`` is ``SET key value NX PX ttl``; the lock therefore
      always carries a TTL and cannot outlive a crashed holder.
    * ``delete_if_equals`` runs a small Lua script so a process only releases
      a lock that still holds its own random value, never one re-acquired by
      another replica after expiry.
    * Keys are namespaced by the caller (e.g. ``securities:ls:token``).

Layer:
    infrastructure/caching
"""

from __future__ import annotations

import time
from contextlib import suppress
from typing import Final

from ls_gateway.infrastructure.caching.redis_client import RedisClient
from ls_gateway.infrastructure.observability.metrics_ls import (
    get_credential_store_operation_duration_seconds,
)

__all__ = ["RedisCredentialStore"]

# Only delete the key if the stored value matches the caller's value.
_COMPARE_AND_DELETE: Final[str] = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisCredentialStore:
    """Redis implementation of the credential store."""

    def __init__(self, redis: RedisClient) -> None:
        """Initialize the store.

        Args:
            redis: Async Redis client created with ``decode_responses=True``.
        """
        self._redis = redis

    async def get(self, key: str) -> str | None:
        start = time.perf_counter()
        try:
            raw = await self._redis.get(key)
        finally:
            self._observe("get", start)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)

    async def set(self, key: str, value: str, *, ttl_s: int | None = None) -> None:
        start = time.perf_counter()
        try:
            await self._redis.set(key, value, ex=ttl_s)
        finally:
            self._observe("set", start)

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int) -> bool:
        start = time.perf_counter()
        try:
            result = await self._redis.set(key, value, px=ttl_ms, nx=True)
        finally:
            self._observe("set_if_absent", start)
        return bool(result)

    async def delete(self, key: str) -> None:
        start = time.perf_counter()
        try:
            await self._redis.delete(key)
        finally:
            self._observe("delete", start)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        start = time.perf_counter()
        try:
            result = await self._redis.eval(_COMPARE_AND_DELETE, 1, key, value)
        finally:
            self._observe("delete_if_equals", start)
        return bool(result)

    @staticmethod
    def _observe(operation: str, start: float) -> None:
        with suppress(Exception):
            get_credential_store_operation_duration_seconds().labels(
                operation=operation
            ).observe(time.perf_counter() - start)
