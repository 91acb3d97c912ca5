# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from typing import Any

import fakeredis.aioredis
import httpx
import pytest
import pytest_asyncio

from ls_gateway.infrastructure.caching.credential_store import RedisCredentialStore
from ls_gateway.infrastructure.external_apis.ls_securities.settings import LSSecuritiesSettings


class FakeClock:
    """Manually advanced clock with a sleep that only moves time forward."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_ls_settings(**overrides: Any) -> LSSecuritiesSettings:
    """Settings with fake credentials and no rate limiting unless overridden."""
    values: dict[str, Any] = {
        "app_key": "test-app-key",
        "secret_key": "test-secret-key",
        "rate_limit_default_ms": 0,
        "lock_retry_delay_ms": 5,
    }
    values.update(overrides)
    return LSSecuritiesSettings(**values)


def token_payload(value: str = "tok-1", expires_in: int = 86_400) -> dict[str, Any]:
    return {
        "access_token": value,
        "token_type": "Bearer",
        "expires_in": expires_in,
        "scope": "oob",
    }


@pytest.fixture
def settings_factory() -> Callable[..., LSSecuritiesSettings]:
    return make_ls_settings


@pytest.fixture
def token_body() -> Callable[..., dict[str, Any]]:
    return token_payload


@pytest.fixture(autouse=True)
def _clear_ls_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer ``LS_*`` variables out of settings built by tests."""
    for key in list(os.environ):
        if key.startswith("LS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def ls_settings() -> LSSecuritiesSettings:
    return make_ls_settings()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[fakeredis.aioredis.FakeRedis]:
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await client.flushall()
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def credential_store(fake_redis: fakeredis.aioredis.FakeRedis) -> RedisCredentialStore:
    return RedisCredentialStore(fake_redis)


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client
