# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities Domain Exceptions.

Synopsis:
    Errors raised by the LS Securities gateway. Every failure that leaves the
    gateway is an :class:`LSError` carrying a stable, machine-readable code:

    * ``"400"``, ``"404"``, ``"500"``, ... : the API answered with that status.
    * ``"NETWORK"``: no response at all (timeout, connection refused, DNS).
    * ``"TOKEN_ERROR"``: no bearer token could be obtained.
    * ``"SCHEMA"``: the API answered with a body we cannot use.

Design:
    * Unlike the class-level codes of :class:`DomainError`, the LS code is an
      instance attribute because it is decided by the upstream response.
    * Keep HTTP concerns out of the domain; map in ``infrastructure/http``.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from typing import Any, Final

from ls_gateway.domain.exceptions.base import DomainError

NETWORK_ERROR_CODE: Final[str] = "NETWORK"
TOKEN_ERROR_CODE: Final[str] = "TOKEN_ERROR"
SCHEMA_ERROR_CODE: Final[str] = "SCHEMA"
AUTH_FAILURE_CODE: Final[str] = "401"


class LSError(DomainError):
    """Normalized LS Securities failure.

    Attributes:
        code: Upstream status code, ``"NETWORK"`` or another gateway code.
        message: Human-readable message (``rsp_msg`` when the API sent one).
        raw_payload: Parsed upstream body, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        raw_payload: Any = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.code = code
        self.raw_payload = raw_payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class LSTokenError(LSError):
    """A bearer token could not be obtained (polling bound exceeded, bad payload)."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(TOKEN_ERROR_CODE, message, details=details)


class LSAuthFailure(LSError):
    """The API rejected the bearer token.

    Raised by a single send attempt. The request executor answers it with one
    forced refresh and one retry; a second occurrence reaches the caller.
    """

    def __init__(self, message: str, raw_payload: Any = None) -> None:
        super().__init__(AUTH_FAILURE_CODE, message, raw_payload)


class LSResponseValidationError(LSError):
    """Upstream returned a non-JSON body or one missing required fields."""

    def __init__(
        self,
        message: str,
        raw_payload: Any = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(SCHEMA_ERROR_CODE, message, raw_payload, details=details)
