# Copyright (c)
# SPDX-License-Identifier: MIT
"""Per-key minimum-interval rate limiter (async, in-memory).

Model:
    Each key (an LS TR code) owns a FIFO chain of waiters. A caller appends a
    future to the tail of its key's chain, waits for its predecessor to be
    granted, sleeps for whatever remains of the key's minimum interval since
    the previous grant, records the grant time and then releases its
    successor. Different keys never wait on each other.

Invariant:
    For one key, two consecutive grants start at least ``interval`` apart,
    in arrival order, however many callers are queued.

This is process-local: it mutates plain dicts from the event loop thread
only. Replicas do not coordinate, so N replicas may together call the
upstream N times as often. That is a known, accepted characteristic.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass

from ls_gateway.infrastructure.logging.logger import get_json_logger
from ls_gateway.infrastructure.observability.metrics_ls import get_rate_limit_wait_seconds

logger = get_json_logger(__name__)


@dataclass
class _Lane:
    """Chain state of one key."""

    last_call_at: float | None = None
    tail: asyncio.Future[None] | None = None


def _resolve(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)


class PerKeyRateLimiter:
    """Serialize calls per key with a minimum interval between grants."""

    def __init__(
        self,
        interval_for: Callable[[str], float],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            interval_for: Returns the minimum interval (seconds) of a key;
                unconfigured keys are expected to get a default.
            clock: Monotonic clock in seconds.
            sleep: Coroutine used to wait.
        """
        self._interval_for = interval_for
        self._clock = clock
        self._sleep = sleep
        self._lanes: dict[str, _Lane] = {}

    async def acquire_slot(self, key: str) -> None:
        """Suspend until a call for ``key`` may start.

        Args:
            key: Rate-limit key (TR code).
        """
        lane = self._lanes.setdefault(key, _Lane())
        predecessor = lane.tail
        turn: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        lane.tail = turn

        queued_at = self._clock()
        waiting_on_predecessor = predecessor is not None and not predecessor.done()
        try:
            if predecessor is not None and waiting_on_predecessor:
                # Shield: cancelling this caller must not cancel the predecessor's turn.
                await asyncio.shield(predecessor)
            waiting_on_predecessor = False

            interval = self._interval_for(key)
            if lane.last_call_at is not None:
                remaining = interval - (self._clock() - lane.last_call_at)
                if remaining > 0:
                    logger.debug(
                        "ls.rate_limit.wait",
                        extra={"tr_cd": key, "wait_s": round(remaining, 4)},
                    )
                    await self._sleep(remaining)
            lane.last_call_at = self._clock()
        finally:
            if waiting_on_predecessor and predecessor is not None:
                # Cancelled while queued: hand our turn over once the predecessor is done.
                predecessor.add_done_callback(lambda _f: _resolve(turn))
            else:
                _resolve(turn)
            if lane.tail is turn and turn.done():
                lane.tail = None

        with suppress(Exception):
            get_rate_limit_wait_seconds().labels(tr_cd=key).observe(self._clock() - queued_at)

    def last_call_at(self, key: str) -> float | None:
        """Return the monotonic instant of the last grant for ``key``, if any."""
        lane = self._lanes.get(key)
        return lane.last_call_at if lane else None
