# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain Entities: request descriptor and continuation state.

Synopsis:
    Immutable values passed into the LS Securities request executor and the
    continuation ("연속조회") state derived from response headers.

Layer:
    domain/entities
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Continuation:
    """Continuation sent with a request (``tr_cont`` / ``tr_cont_key`` headers)."""

    flag: str
    key: str | None = None

    @property
    def is_continuing(self) -> bool:
        """Return True if this request asks for a follow-up page."""
        return self.flag == "Y" and bool(self.key)


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """One call to the LS Securities API.

    Attributes:
        operation_code: TR code (e.g. ``"t1533"``); rate-limiter key and
            ``tr_cd`` header.
        path: Endpoint-family path relative to the base URL.
        body: JSON body (the TR's in-block).
        continuation: Continuation to send, if this is a follow-up page.
        timeout_override: Per-request timeout in seconds.
    """

    operation_code: str
    path: str
    body: Mapping[str, Any] = field(default_factory=dict)
    continuation: Continuation | None = None
    timeout_override: float | None = None

    def with_continuation(self, continuation: Continuation | None) -> RequestDescriptor:
        """Return a copy of this descriptor carrying ``continuation``."""
        return replace(self, continuation=continuation)


@dataclass(frozen=True, slots=True)
class ContinuationCursor:
    """Continuation state read from the ``tr_cont`` / ``tr_cont_key`` response headers."""

    has_more: bool
    next_key: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> ContinuationCursor:
        """Build a cursor from response headers (missing headers mean "done")."""
        flag = (headers.get("tr_cont") or "").strip().upper()
        key = headers.get("tr_cont_key") or None
        return cls(has_more=flag == "Y", next_key=key)

    def next_continuation(self) -> Continuation | None:
        """Return the continuation for the next call, or ``None`` if finished."""
        if self.has_more and self.next_key:
            return Continuation(flag="Y", key=self.next_key)
        return None


@dataclass(frozen=True)
class ContinuationResult(Generic[T]):
    """Parsed body plus the continuation cursor of one call."""

    body: T
    continuation: ContinuationCursor


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page yielded by the continuation iterator."""

    data: T
    has_more: bool
    next_key: str | None = None
