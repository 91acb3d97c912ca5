# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application Port: LS Securities market data gateway.

Use-cases depend on this protocol rather than on the transport client, so
they can be tested against an in-memory fake.

Design:
    * Three entry points: a single call, an incremental page walk, and an
      eager drain of one array field across pages.
    * Every failure is an ``LSError`` with a stable ``code``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol

from ls_gateway.domain.entities.request import Page, RequestDescriptor


class LSMarketDataGateway(Protocol):
    """Protocol for calling LS Securities TR codes."""

    async def request(self, descriptor: RequestDescriptor) -> dict[str, Any]:
        """Perform one call (retried once on a rejected token) and return its body."""
        ...

    def paginate(
        self,
        descriptor: RequestDescriptor,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[Page[dict[str, Any]]]:
        """Return a fresh iterator over the continuation pages of ``descriptor``.

        Args:
            descriptor: First request of the walk.
            max_pages: Safety bound on pages fetched; implementation default if ``None``.
        """
        ...

    async def collect_all(
        self,
        descriptor: RequestDescriptor,
        data_key: str,
        max_pages: int | None = None,
    ) -> list[Any]:
        """Concatenate the ``data_key`` arrays of up to ``max_pages`` pages."""
        ...
