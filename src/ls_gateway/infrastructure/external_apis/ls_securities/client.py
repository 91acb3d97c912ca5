# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities Transport Client: rate-limited, authenticated, instrumented.

Every call goes through the same sequence:

1. Acquire a rate-limiter slot for the TR code.
2. Obtain a bearer token from the :class:`TokenManager`.
3. POST the TR in-block with ``authorization`` / ``tr_cd`` / ``tr_cont``
   (and ``tr_cont_key`` when continuing) headers.
4. Return the parsed body, plus the continuation cursor read from the
   ``tr_cont`` / ``tr_cont_key`` response headers for the continuation variant.

A rejected token (HTTP 401, or an error response whose ``rsp_cd`` is a known
"token invalid" code) is answered with one forced refresh and one retry; the
retry waits for its own rate-limiter slot. Nothing else is retried. Transport
and API failures leave this module as an :class:`LSError`; credential-store
faults propagate unchanged. Both are counted in the error metric.
"""

from __future__ import annotations

import time
from contextlib import suppress
from enum import Enum
from typing import Any, Final

import httpx

from ls_gateway.domain.entities.request import (
    ContinuationCursor,
    ContinuationResult,
    RequestDescriptor,
)
from ls_gateway.domain.exceptions.ls_securities import (
    LSAuthFailure,
    LSError,
    LSResponseValidationError,
)
from ls_gateway.infrastructure.external_apis.ls_securities.errors import (
    DEFAULT_API_ERROR_MESSAGE,
    response_code,
    response_message,
    response_payload,
    to_domain_error,
)
from ls_gateway.infrastructure.external_apis.ls_securities.settings import LSSecuritiesSettings
from ls_gateway.infrastructure.external_apis.ls_securities.token_manager import TokenManager
from ls_gateway.infrastructure.external_apis.ls_securities.types import validate_response
from ls_gateway.infrastructure.logging.logger import get_json_logger
from ls_gateway.infrastructure.observability.metrics_ls import (
    get_auth_retries_total,
    get_errors_total,
    get_request_latency_seconds,
)
from ls_gateway.infrastructure.resilience.rate_limiter import PerKeyRateLimiter

logger = get_json_logger(__name__)

_CONTENT_TYPE: Final[str] = "application/json; charset=utf-8"


class AttemptState(str, Enum):
    """Lifecycle of one ``execute`` call."""

    INIT = "init"
    SENT = "sent"
    REFRESHING = "refreshing"
    RETRIED = "retried"
    DONE = "done"
    FAILED = "failed"


def build_headers(descriptor: RequestDescriptor, token: str) -> dict[str, str]:
    """Return the request headers for ``descriptor``.

    Args:
        descriptor: The call being made.
        token: Bearer token value.

    Returns:
        Header mapping; ``tr_cont_key`` is present only for a continuing call.
    """
    continuation = descriptor.continuation
    headers = {
        "content-type": _CONTENT_TYPE,
        "authorization": f"Bearer {token}",
        "tr_cd": descriptor.operation_code,
        "tr_cont": continuation.flag if continuation is not None else "N",
    }
    if continuation is not None and continuation.is_continuing:
        headers["tr_cont_key"] = str(continuation.key)
    return headers


class LSClient:
    """Request executor for the LS Securities Open API."""

    def __init__(
        self,
        settings: LSSecuritiesSettings,
        token_manager: TokenManager,
        rate_limiter: PerKeyRateLimiter,
        *,
        http: httpx.AsyncClient | None = None,
        owns_http: bool | None = None,
        validate: bool = True,
    ) -> None:
        """Initialize the executor.

        Args:
            settings: Provider settings.
            token_manager: Source of bearer tokens.
            rate_limiter: Per-TR-code limiter shared by every call of this process.
            http: Optional shared ``httpx.AsyncClient``. If omitted, a client
                is created and owned by this instance.
            owns_http: Close ``http`` in :meth:`aclose`; defaults to True only
                for a client created here.
            validate: Check responses against the per-TR schema registry.
        """
        self._settings = settings
        self._tokens = token_manager
        self._limiter = rate_limiter
        self._validate = validate
        self._base_url = str(settings.base_url).rstrip("/")
        self._owns_http = http is None if owns_http is None else owns_http
        self._http = http or httpx.AsyncClient(timeout=settings.timeout_s)
        self._auth_failure_codes = frozenset(settings.auth_failure_codes)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance owns it."""
        if self._owns_http:
            await self._http.aclose()

    async def execute(self, descriptor: RequestDescriptor) -> dict[str, Any]:
        """Perform one call and return its parsed body.

        Raises:
            LSError: Any failure, after at most one auth-triggered retry.
        """
        result = await self.execute_with_continuation(descriptor)
        return result.body

    async def execute_with_continuation(
        self, descriptor: RequestDescriptor
    ) -> ContinuationResult[dict[str, Any]]:
        """Perform one call and return its body and continuation cursor.

        Raises:
            LSError: Any failure, after at most one auth-triggered retry.
        """
        code = descriptor.operation_code
        started = time.perf_counter()
        state = AttemptState.INIT
        retried = False
        token: str | None = None

        try:
            while True:
                await self._limiter.acquire_slot(code)
                if token is None:
                    token = await self._tokens.get_valid_token()

                state = AttemptState.SENT
                try:
                    body, cursor = await self._send(descriptor, token)
                except LSAuthFailure:
                    if retried:
                        raise
                    state = AttemptState.REFRESHING
                    logger.warning(
                        "ls.request.auth_failure_refreshing",
                        extra={"tr_cd": code, "state": state.value},
                    )
                    with suppress(Exception):
                        get_auth_retries_total().labels(tr_cd=code).inc()
                    token = await self._tokens.force_refresh(stale_token=token)
                    retried = True
                    state = AttemptState.RETRIED
                    continue
                break
        except LSError as exc:
            self._fail(code, started, exc.code, from_state=state, retried=retried)
            raise
        except Exception as exc:
            # Store or token-source faults propagate unchanged but are still counted.
            self._fail(code, started, type(exc).__name__, from_state=state, retried=retried)
            raise

        state = AttemptState.DONE
        self._observe(code, "success", started)
        logger.debug(
            "ls.request.done",
            extra={"tr_cd": code, "state": state.value, "has_more": cursor.has_more},
        )
        return ContinuationResult(body=body, continuation=cursor)

    # --------------------------- Internal helpers ------------------------- #

    def _fail(
        self,
        code: str,
        started: float,
        error_code: str,
        *,
        from_state: AttemptState,
        retried: bool,
    ) -> None:
        self._observe(code, "error", started, error_code=error_code)
        logger.warning(
            "ls.request.failed",
            extra={
                "tr_cd": code,
                "code": error_code,
                "state": AttemptState.FAILED.value,
                "failed_in": from_state.value,
                "retried": retried,
            },
        )

    async def _send(
        self, descriptor: RequestDescriptor, token: str
    ) -> tuple[dict[str, Any], ContinuationCursor]:
        """Make exactly one HTTP attempt.

        Raises:
            LSAuthFailure: The token was rejected.
            LSError: Any other failure (translated).
        """
        timeout = (
            descriptor.timeout_override
            if descriptor.timeout_override is not None
            else self._settings.timeout_s
        )
        try:
            response = await self._http.post(
                f"{self._base_url}{descriptor.path}",
                json=dict(descriptor.body),
                headers=build_headers(descriptor, token),
                timeout=timeout,
            )
        except httpx.RequestError as exc:
            raise to_domain_error(exc) from exc

        if self._is_auth_failure(response):
            payload = response_payload(response)
            raise LSAuthFailure(response_message(payload) or DEFAULT_API_ERROR_MESSAGE, payload)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise to_domain_error(exc) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LSResponseValidationError(
                f"{descriptor.operation_code} response is not JSON",
                response.text or None,
                details={"tr_cd": descriptor.operation_code},
            ) from exc

        if self._validate:
            body = validate_response(descriptor.operation_code, payload)
        elif isinstance(payload, dict):
            body = payload
        else:
            raise LSResponseValidationError(
                f"{descriptor.operation_code} response is not a JSON object",
                payload,
                details={"tr_cd": descriptor.operation_code},
            )
        return body, ContinuationCursor.from_headers(response.headers)

    def _is_auth_failure(self, response: httpx.Response) -> bool:
        if response.status_code == httpx.codes.UNAUTHORIZED:
            return True
        if response.is_success or not self._auth_failure_codes:
            return False
        return response_code(response_payload(response)) in self._auth_failure_codes

    @staticmethod
    def _observe(code: str, outcome: str, started: float, *, error_code: str | None = None) -> None:
        with suppress(Exception):
            get_request_latency_seconds().labels(tr_cd=code, outcome=outcome).observe(
                time.perf_counter() - started
            )
        if error_code is not None:
            with suppress(Exception):
                get_errors_total().labels(tr_cd=code, code=error_code).inc()
