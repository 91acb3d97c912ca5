# Copyright (c)
# SPDX-License-Identifier: MIT
"""Adapter Gateway: LS Securities transport → application port.

Composes the per-process pieces (rate limiter, token manager, request
executor) behind :class:`LSMarketDataGateway`. Build one instance at process
start and inject it; the rate limiter state lives inside it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from ls_gateway.application.interfaces.market_data_gateway import LSMarketDataGateway
from ls_gateway.domain.entities.request import Page, RequestDescriptor
from ls_gateway.infrastructure.external_apis.ls_securities.client import LSClient
from ls_gateway.infrastructure.external_apis.ls_securities.pagination import (
    collect_all,
    paginate,
)
from ls_gateway.infrastructure.external_apis.ls_securities.settings import LSSecuritiesSettings
from ls_gateway.infrastructure.external_apis.ls_securities.token_manager import TokenManager


class LSSecuritiesGateway(LSMarketDataGateway):
    """LS Securities adapter implementing the market data port."""

    def __init__(
        self,
        client: LSClient,
        token_manager: TokenManager,
        settings: LSSecuritiesSettings,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Request executor shared by every call of this process.
            token_manager: Token manager the executor draws tokens from.
            settings: Provider settings supplying the default page bounds.
        """
        self._client = client
        self._tokens = token_manager
        self._settings = settings

    @property
    def token_manager(self) -> TokenManager:
        """Token manager, exposed for explicit refresh or invalidation."""
        return self._tokens

    async def request(self, descriptor: RequestDescriptor) -> dict[str, Any]:
        """Execute a single TR call.

        Args:
            descriptor: TR code, path, body and optional continuation.

        Returns:
            The parsed response body.

        Raises:
            LSError: The call failed after at most one auth-triggered retry.
        """
        return await self._client.execute(descriptor)

    def paginate(
        self,
        descriptor: RequestDescriptor,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[Page[dict[str, Any]]]:
        """Iterate the continuation pages of a TR lazily.

        Args:
            descriptor: First request of the walk.
            max_pages: Page bound; defaults to ``settings.max_pages``.

        Returns:
            An async iterator of pages in API order.
        """
        return paginate(
            self._client,
            descriptor,
            max_pages=max_pages if max_pages is not None else self._settings.max_pages,
        )

    async def collect_all(
        self,
        descriptor: RequestDescriptor,
        data_key: str,
        max_pages: int | None = None,
    ) -> list[Any]:
        """Fetch every page and concatenate one array field.

        Args:
            descriptor: First request of the walk.
            data_key: Out-block holding the rows, e.g. ``"t1537OutBlock1"``.
            max_pages: Page bound; defaults to ``settings.collect_max_pages``.

        Returns:
            Rows from all pages, in page order.
        """
        return await collect_all(
            self._client,
            descriptor,
            data_key,
            max_pages=max_pages if max_pages is not None else self._settings.collect_max_pages,
        )

    async def aclose(self) -> None:
        """Release the executor's owned HTTP client, if any."""
        await self._client.aclose()
