# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities continuation ("연속조회") iteration.

``paginate`` lazily walks a TR's pages: each request carries the
``tr_cont_key`` returned by the previous one, and the walk ends when the API
stops answering ``tr_cont: Y`` or when the page bound is reached. Reaching the
bound is logged and counted separately from a natural end.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import suppress
from typing import Any

from ls_gateway.domain.entities.request import Continuation, Page, RequestDescriptor
from ls_gateway.infrastructure.external_apis.ls_securities.client import LSClient
from ls_gateway.infrastructure.logging.logger import get_json_logger
from ls_gateway.infrastructure.observability.metrics_ls import get_pagination_truncated_total

logger = get_json_logger(__name__)


async def paginate(
    client: LSClient,
    descriptor: RequestDescriptor,
    *,
    max_pages: int,
) -> AsyncGenerator[Page[dict[str, Any]], None]:
    """Yield the pages of a continuation query in API order.

    Args:
        client: Request executor.
        descriptor: First request; any continuation it carries is ignored.
        max_pages: Safety bound on the number of pages fetched.

    Yields:
        One :class:`Page` per call.

    Raises:
        ValueError: If ``max_pages`` is not positive.
        LSError: A page failed; pages already yielded stay valid.
    """
    if max_pages < 1:
        raise ValueError("max_pages must be >= 1")

    code = descriptor.operation_code
    continuation: Continuation | None = None
    fetched = 0

    while True:
        result = await client.execute_with_continuation(descriptor.with_continuation(continuation))
        fetched += 1
        cursor = result.continuation
        yield Page(data=result.body, has_more=cursor.has_more, next_key=cursor.next_key)

        continuation = cursor.next_continuation()
        if continuation is None:
            if cursor.has_more:
                logger.warning(
                    "ls.pagination.missing_continuation_key",
                    extra={"tr_cd": code, "pages": fetched},
                )
            return

        if fetched >= max_pages:
            logger.warning(
                "ls.pagination.truncated",
                extra={"tr_cd": code, "max_pages": max_pages},
            )
            with suppress(Exception):
                get_pagination_truncated_total().labels(tr_cd=code).inc()
            return


async def collect_all(
    client: LSClient,
    descriptor: RequestDescriptor,
    data_key: str,
    *,
    max_pages: int,
) -> list[Any]:
    """Concatenate the ``data_key`` array of every page.

    Pages where ``data_key`` is missing or not a list contribute nothing.
    """
    items: list[Any] = []
    pages = paginate(client, descriptor, max_pages=max_pages)
    try:
        async for page in pages:
            block = page.data.get(data_key)
            if isinstance(block, list):
                items.extend(block)
    finally:
        await pages.aclose()
    return items
