# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP-facing error helpers for LS Securities failures.

The gateway itself only raises :class:`LSError`. Services that expose an HTTP
API map those codes to their own status codes with :func:`wrap_ls_error` and
render them with :func:`error_envelope`. No web framework is assumed.
"""

from __future__ import annotations

from typing import Any, Final, NoReturn

from ls_gateway.domain.exceptions.ls_securities import NETWORK_ERROR_CODE, LSError

PROVIDER: Final[str] = "LS_SECURITIES"
SERVER_ERROR_MESSAGE: Final[str] = "LS Securities server error"

LS_STATUS_MAP: Final[dict[str, int]] = {
    "400": 400,
    "401": 401,
    "404": 404,
    "405": 405,
    "500": 502,
    "503": 502,
    NETWORK_ERROR_CODE: 502,
}
_UPSTREAM_FAULT_CODES: Final[frozenset[str]] = frozenset({"500", "503", NETWORK_ERROR_CODE})


class ExternalApiError(Exception):
    """Provider failure ready to be returned to an HTTP client."""

    def __init__(
        self,
        provider: str,
        status: int,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.message = message
        self.details = details or {}

    def to_envelope(self, *, trace_id: str | None = None) -> dict[str, Any]:
        return error_envelope(
            code=f"{self.provider}_ERROR",
            http_status=self.status,
            message=self.message,
            details={"provider": self.provider, **self.details},
            trace_id=trace_id,
        )


def error_envelope(
    *,
    code: str,
    http_status: int,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {
        "code": code,
        "http_status": http_status,
        "message": message,
    }
    if details is not None:
        err["details"] = details
    if trace_id is not None:
        err["trace_id"] = trace_id
    return {"error": err}


def to_http_status(code: str) -> int:
    """Return the HTTP status for an :class:`LSError` code (500 when unmapped)."""
    return LS_STATUS_MAP.get(code, 500)


def wrap_ls_error(exc: BaseException) -> NoReturn:
    """Re-raise an :class:`LSError` as an :class:`ExternalApiError`.

    Upstream faults (5xx and network failures) get a generic message; the
    original code is kept in ``details["original_code"]``.

    Raises:
        ExternalApiError: Always, for an :class:`LSError`.
        BaseException: ``exc`` unchanged for any other exception.
    """
    if not isinstance(exc, LSError):
        raise exc

    message = SERVER_ERROR_MESSAGE if exc.code in _UPSTREAM_FAULT_CODES else exc.message
    raise ExternalApiError(
        PROVIDER,
        to_http_status(exc.code),
        message,
        {"original_code": exc.code},
    ) from exc
