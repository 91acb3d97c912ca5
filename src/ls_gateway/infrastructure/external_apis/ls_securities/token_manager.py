# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities bearer token manager.

Owns the lifecycle of the OAuth2 client-credentials token shared by every
gateway replica through the credential store.

Protocol:
    * ``get_valid_token``: return the cached token unless it expires within
      the refresh buffer; otherwise refresh.
    * Refresh: ``SET lock NX PX ttl`` with a random value.
        - Winner: re-check the cache (another replica may have just
          refreshed), call the token endpoint if still needed, store the new
          token, and release the lock on every exit path (compare-and-delete).
        - Loser: poll the cache every ``lock_retry_delay_ms`` up to the poll
          bound and return the first valid token; fail with
          :class:`LSTokenError` once the bound is exceeded.
    * ``force_refresh``: same protocol without the near-expiry shortcut, used
      after the API rejected a token.

At most one replica calls the token endpoint at a time; waiters are not
ordered.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager, suppress
from typing import Any

import httpx

from ls_gateway.domain.entities.token import CachedToken
from ls_gateway.domain.exceptions.ls_securities import LSTokenError
from ls_gateway.domain.interfaces.credential_store import CredentialStore
from ls_gateway.infrastructure.external_apis.ls_securities.errors import to_domain_error
from ls_gateway.infrastructure.external_apis.ls_securities.settings import LSSecuritiesSettings
from ls_gateway.infrastructure.logging.logger import get_json_logger
from ls_gateway.infrastructure.observability.metrics_ls import (
    get_token_lock_contended_total,
    get_token_refresh_total,
)

logger = get_json_logger(__name__)


class TokenManager:
    """Read-through, cross-process-safe cache of the LS bearer token."""

    def __init__(
        self,
        settings: LSSecuritiesSettings,
        store: CredentialStore,
        http: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the manager.

        Args:
            settings: Provider settings (credentials, buffer, lock knobs).
            store: Shared credential store.
            http: HTTP client used for the token endpoint.
            clock: Wall clock in epoch seconds (token expiry is absolute).
            sleep: Coroutine used between lock polls.
        """
        self._settings = settings
        self._store = store
        self._http = http
        self._clock = clock
        self._sleep = sleep
        self._token_url = f"{str(settings.base_url).rstrip('/')}{settings.token_path}"

    # ---------------------------- Public API ----------------------------- #

    async def get_valid_token(self) -> str:
        """Return a usable bearer token, refreshing it if it is close to expiry.

        Raises:
            LSTokenError: Waiting for another refresh holder timed out.
            LSError: The token endpoint failed (translated transport error).
        """
        cached = await self._read_cached()
        if cached is not None and self._is_usable(cached, stale=None):
            return cached.value

        logger.info("ls.token.cache_miss", extra={"cached": cached is not None})
        return await self._refresh_with_lock(stale=None)

    async def force_refresh(self, stale_token: str | None = None) -> str:
        """Refresh the token regardless of its expiry.

        Args:
            stale_token: The token the API just rejected. When given, a cached
                token with a different value (refreshed meanwhile by another
                replica) is accepted instead of calling the endpoint again.

        Raises:
            LSTokenError: Waiting for another refresh holder timed out.
            LSError: The token endpoint failed (translated transport error).
        """
        logger.info("ls.token.force_refresh")
        return await self._refresh_with_lock(stale=stale_token, force=stale_token is None)

    async def invalidate(self) -> None:
        """Delete the cached token so the next call refreshes."""
        await self._store.delete(self._settings.token_key)
        logger.info("ls.token.invalidated")

    # --------------------------- Internal helpers ------------------------- #

    def _is_usable(self, token: CachedToken, *, stale: str | None) -> bool:
        if stale is not None and token.value == stale:
            return False
        return token.is_valid(self._clock(), self._settings.token_refresh_buffer_s)

    async def _read_cached(self) -> CachedToken | None:
        return CachedToken.from_json(await self._store.get(self._settings.token_key))

    async def _refresh_with_lock(self, *, stale: str | None, force: bool = False) -> str:
        async with self._refresh_lock() as acquired:
            if not acquired:
                return await self._wait_for_refresh(stale=stale)

            if not force:
                cached = await self._read_cached()
                if cached is not None and self._is_usable(cached, stale=stale):
                    logger.info("ls.token.refreshed_elsewhere")
                    return cached.value

            token = await self._request_new_token()
            await self._cache(token)
            return token.value

    @asynccontextmanager
    async def _refresh_lock(self) -> AsyncIterator[bool]:
        """Hold the refresh lock for the duration of the block, if it can be taken.

        Yields:
            True if this process holds the lock.
        """
        owner = uuid.uuid4().hex
        acquired = await self._store.set_if_absent(
            self._settings.lock_key, owner, ttl_ms=self._settings.lock_ttl_ms
        )
        if not acquired:
            with suppress(Exception):
                get_token_lock_contended_total().inc()
            logger.info("ls.token.lock_contended")
        try:
            yield acquired
        finally:
            if acquired:
                released = await self._store.delete_if_equals(self._settings.lock_key, owner)
                if not released:
                    logger.warning("ls.token.lock_expired_before_release")

    async def _wait_for_refresh(self, *, stale: str | None) -> str:
        retries = self._settings.effective_lock_max_retries
        delay_s = self._settings.lock_retry_delay_ms / 1000.0
        for _ in range(retries):
            await self._sleep(delay_s)
            cached = await self._read_cached()
            if cached is not None and self._is_usable(cached, stale=stale):
                return cached.value

        logger.error("ls.token.wait_timeout", extra={"polls": retries})
        raise LSTokenError(
            "Timed out waiting for token refresh",
            details={"polls": retries, "delay_ms": self._settings.lock_retry_delay_ms},
        )

    async def _request_new_token(self) -> CachedToken:
        """Call the token endpoint.

        Raises:
            LSError: Transport failure or non-2xx status (translated).
            LSTokenError: 2xx response without a usable token.
        """
        form = {
            "grant_type": "client_credentials",
            "appkey": self._settings.app_key.get_secret_value(),
            "appsecretkey": self._settings.secret_key.get_secret_value(),
            "scope": self._settings.token_scope,
        }
        issued_at = self._clock()
        try:
            response = await self._http.post(
                self._token_url,
                data=form,
                headers={"content-type": "application/x-www-form-urlencoded"},
                timeout=self._settings.token_timeout_s,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            error = to_domain_error(exc)
            self._count_refresh("error")
            logger.error(
                "ls.token.request_failed",
                extra={"code": error.code, "reason": type(exc).__name__},
            )
            raise error from exc

        try:
            payload: Any = response.json()
            value = str(payload["access_token"])
            expires_in = int(payload.get("expires_in", 0))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            self._count_refresh("error")
            raise LSTokenError("Token endpoint returned an unusable payload") from exc

        if not value:
            self._count_refresh("error")
            raise LSTokenError("Token endpoint returned an empty token")

        self._count_refresh("success")
        logger.info("ls.token.refreshed", extra={"expires_in": expires_in})
        return CachedToken(value=value, expires_at=issued_at + expires_in, issued_at=issued_at)

    async def _cache(self, token: CachedToken) -> None:
        ttl_s = int(token.expires_at - token.issued_at)
        if ttl_s <= 0:
            # Nothing to share; the caller still gets this one-off token.
            logger.warning("ls.token.not_cached", extra={"expires_in": ttl_s})
            return
        await self._store.set(self._settings.token_key, token.to_json(), ttl_s=ttl_s)

    @staticmethod
    def _count_refresh(result: str) -> None:
        with suppress(Exception):
            get_token_refresh_total().labels(result=result).inc()


__all__ = ["TokenManager"]
