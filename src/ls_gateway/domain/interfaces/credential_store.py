# Copyright (c)
# SPDX-License-Identifier: MIT
"""Credential Store Protocol.

Synopsis:
    Shared key-value store reachable by every gateway replica. It only holds
    coordination state: the cached bearer token and the refresh lock.

Design:
    * Writes go through atomic primitives (``set_if_absent``,
      ``delete_if_equals``); callers never read-modify-write.
    * TTLs are mandatory on locks so a crashed holder cannot deadlock others.

Layer:
    domain/interfaces
"""

from __future__ import annotations

from typing import Protocol


class CredentialStore(Protocol):
    """Atomic key-value primitives used for token coordination."""

    async def get(self, key: str) -> str | None:
        """Return the value stored at ``key`` or ``None``."""
        ...

    async def set(self, key: str, value: str, *, ttl_s: int | None = None) -> None:
        """Store ``value`` at ``key``, optionally expiring after ``ttl_s`` seconds."""
        ...

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int) -> bool:
        """Atomically store ``value`` only if ``key`` does not exist.

        Returns:
            True if this call created the key.
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key`` (no-op if absent)."""
        ...

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically remove ``key`` only if it still holds ``value``.

        Returns:
            True if the key was removed.
        """
        ...
