# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities error translation.

Maps transport and upstream failures onto :class:`LSError` so that callers see
one error type with a stable code:

* :class:`LSError` (and subclasses): passed through unchanged.
* ``httpx.HTTPStatusError``: code is the HTTP status, message is ``rsp_msg``
  from the body when present, ``raw_payload`` is the parsed body.
* ``httpx.RequestError`` (timeouts, refused connections, DNS, protocol):
  code ``"NETWORK"`` with a generic message.
* Anything else is a programming error and is re-raised as is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final

import httpx

from ls_gateway.domain.exceptions.ls_securities import NETWORK_ERROR_CODE, LSError

DEFAULT_API_ERROR_MESSAGE: Final[str] = "LS Securities API error"
NETWORK_ERROR_MESSAGE: Final[str] = "LS Securities API unreachable"


def response_payload(response: httpx.Response) -> Any:
    """Return the parsed JSON body of ``response``, or its text if not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


def response_message(payload: Any) -> str | None:
    """Return ``rsp_msg`` from an upstream payload, if present."""
    if isinstance(payload, Mapping):
        msg = payload.get("rsp_msg")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return None


def response_code(payload: Any) -> str | None:
    """Return the application code ``rsp_cd`` from an upstream payload, if present."""
    if isinstance(payload, Mapping):
        code = payload.get("rsp_cd")
        if code is not None and str(code).strip():
            return str(code).strip()
    return None


def to_domain_error(exc: BaseException) -> LSError:
    """Translate a caught exception into an :class:`LSError`.

    Args:
        exc: The exception caught around an LS API call.

    Returns:
        The normalized error; the caller raises it (``raise ... from exc``).

    Raises:
        BaseException: ``exc`` itself when it is neither an LS error nor an
            httpx transport/status error.
    """
    if isinstance(exc, LSError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        payload = response_payload(exc.response)
        return LSError(
            str(exc.response.status_code),
            response_message(payload) or DEFAULT_API_ERROR_MESSAGE,
            payload,
            details={"rsp_cd": response_code(payload)} if response_code(payload) else None,
        )

    if isinstance(exc, httpx.RequestError):
        return LSError(
            NETWORK_ERROR_CODE,
            NETWORK_ERROR_MESSAGE,
            details={"reason": type(exc).__name__},
        )

    raise exc
