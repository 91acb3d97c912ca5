# tests/unit/infrastructure/caching/test_credential_store.py
from __future__ import annotations

import pytest

from ls_gateway.infrastructure.caching.credential_store import RedisCredentialStore


@pytest.mark.asyncio
async def test_get_set_delete_roundtrip(credential_store: RedisCredentialStore, fake_redis) -> None:
    assert await credential_store.get("k") is None

    await credential_store.set("k", "v", ttl_s=60)
    assert await credential_store.get("k") == "v"
    assert 0 < await fake_redis.ttl("k") <= 60

    await credential_store.delete("k")
    assert await credential_store.get("k") is None


@pytest.mark.asyncio
async def test_set_without_ttl_persists(credential_store: RedisCredentialStore, fake_redis) -> None:
    await credential_store.set("k", "v")
    assert await fake_redis.ttl("k") == -1


@pytest.mark.asyncio
async def test_set_if_absent_is_exclusive_and_expires(
    credential_store: RedisCredentialStore, fake_redis
) -> None:
    assert await credential_store.set_if_absent("lock", "a", ttl_ms=5_000) is True
    assert await credential_store.set_if_absent("lock", "b", ttl_ms=5_000) is False

    assert await fake_redis.get("lock") == "a"
    assert 0 < await fake_redis.pttl("lock") <= 5_000


@pytest.mark.asyncio
async def test_delete_if_equals_only_removes_own_value(
    credential_store: RedisCredentialStore, fake_redis
) -> None:
    await fake_redis.set("lock", "owner-a")

    assert await credential_store.delete_if_equals("lock", "owner-b") is False
    assert await fake_redis.get("lock") == "owner-a"

    assert await credential_store.delete_if_equals("lock", "owner-a") is True
    assert await fake_redis.get("lock") is None


@pytest.mark.asyncio
async def test_delete_if_equals_on_missing_key(credential_store: RedisCredentialStore) -> None:
    assert await credential_store.delete_if_equals("absent", "x") is False
