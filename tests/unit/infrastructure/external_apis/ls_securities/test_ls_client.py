# tests/unit/infrastructure/external_apis/ls_securities/test_ls_client.py
from __future__ import annotations

import json
import logging

import httpx
import pytest
import respx
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from ls_gateway.domain.entities.request import Continuation, RequestDescriptor
from ls_gateway.domain.exceptions.ls_securities import LSError, LSResponseValidationError
from ls_gateway.infrastructure.external_apis.ls_securities import client as client_module
from ls_gateway.infrastructure.external_apis.ls_securities.client import LSClient, build_headers
from ls_gateway.infrastructure.external_apis.ls_securities.settings import PATH_SECTOR
from ls_gateway.infrastructure.resilience.rate_limiter import PerKeyRateLimiter

T8425_BODY = {
    "rsp_cd": "00000",
    "rsp_msg": "정상적으로 조회가 완료되었습니다.",
    "t8425OutBlock": [{"tmname": "2차전지", "tmcode": "0001"}],
}


class FakeTokens:
    """Token manager double: hands out ``tok-1`` then ``tok-2`` after a refresh."""

    def __init__(self) -> None:
        self.current = "tok-1"
        self.refreshes: list[str | None] = []

    async def get_valid_token(self) -> str:
        return self.current

    async def force_refresh(self, stale_token: str | None = None) -> str:
        self.refreshes.append(stale_token)
        self.current = f"tok-{len(self.refreshes) + 1}"
        return self.current


class RecordingLimiter(PerKeyRateLimiter):
    def __init__(self) -> None:
        super().__init__(lambda _k: 0.0)
        self.keys: list[str] = []

    async def acquire_slot(self, key: str) -> None:
        self.keys.append(key)
        await super().acquire_slot(key)


def _descriptor(**kwargs) -> RequestDescriptor:
    return RequestDescriptor(
        operation_code=kwargs.pop("operation_code", "t8425"),
        path=PATH_SECTOR,
        body=kwargs.pop("body", {"t8425InBlock": {"dummy": ""}}),
        **kwargs,
    )


def _url(settings) -> str:
    return f"{settings.base_url}{PATH_SECTOR}"


@pytest.mark.asyncio
@respx.mock
async def test_execute_sends_headers_and_returns_body(ls_settings, http_client) -> None:
    route = respx.post(_url(ls_settings)).mock(return_value=httpx.Response(200, json=T8425_BODY))
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    body = await client.execute(_descriptor())

    assert body == T8425_BODY
    request = route.calls.last.request
    assert request.headers["authorization"] == "Bearer tok-1"
    assert request.headers["tr_cd"] == "t8425"
    assert request.headers["tr_cont"] == "N"
    assert request.headers["content-type"] == "application/json; charset=utf-8"
    assert "tr_cont_key" not in request.headers
    assert json.loads(request.content) == {"t8425InBlock": {"dummy": ""}}


def test_continuation_key_header_only_when_continuing() -> None:
    continuing = _descriptor(continuation=Continuation(flag="Y", key="k-1"))
    not_continuing = _descriptor(continuation=Continuation(flag="N", key="k-1"))

    assert build_headers(continuing, "t")["tr_cont_key"] == "k-1"
    assert build_headers(continuing, "t")["tr_cont"] == "Y"
    assert "tr_cont_key" not in build_headers(not_continuing, "t")


@pytest.mark.asyncio
@respx.mock
async def test_execute_with_continuation_reads_response_headers(ls_settings, http_client) -> None:
    respx.post(_url(ls_settings)).mock(
        return_value=httpx.Response(
            200, json=T8425_BODY, headers={"tr_cont": "Y", "tr_cont_key": "next-1"}
        )
    )
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    result = await client.execute_with_continuation(_descriptor())

    assert result.body == T8425_BODY
    assert result.continuation.has_more is True
    assert result.continuation.next_key == "next-1"


@pytest.mark.asyncio
@respx.mock
async def test_auth_failure_then_success_refreshes_once_and_retries_once(
    ls_settings, http_client
) -> None:
    route = respx.post(_url(ls_settings))
    route.side_effect = [
        httpx.Response(401, json={"rsp_cd": "IGW00121", "rsp_msg": "token expired"}),
        httpx.Response(200, json=T8425_BODY),
    ]
    tokens = FakeTokens()
    limiter = RecordingLimiter()
    client = LSClient(ls_settings, tokens, limiter, http=http_client)

    body = await client.execute(_descriptor())

    assert body == T8425_BODY
    assert route.call_count == 2
    assert tokens.refreshes == ["tok-1"]
    assert route.calls[1].request.headers["authorization"] == "Bearer tok-2"
    # The retry waits for its own rate-limiter slot.
    assert limiter.keys == ["t8425", "t8425"]


@pytest.mark.asyncio
@respx.mock
async def test_second_auth_failure_is_surfaced_after_one_retry(ls_settings, http_client) -> None:
    route = respx.post(_url(ls_settings)).mock(
        return_value=httpx.Response(401, json={"rsp_cd": "IGW00121", "rsp_msg": "token expired"})
    )
    tokens = FakeTokens()
    client = LSClient(ls_settings, tokens, RecordingLimiter(), http=http_client)

    with pytest.raises(LSError) as excinfo:
        await client.execute(_descriptor())

    assert excinfo.value.code == "401"
    assert excinfo.value.message == "token expired"
    assert route.call_count == 2
    assert len(tokens.refreshes) == 1


@pytest.mark.asyncio
@respx.mock
async def test_token_invalid_application_code_counts_as_auth_failure(
    ls_settings, http_client
) -> None:
    route = respx.post(_url(ls_settings))
    route.side_effect = [
        httpx.Response(500, json={"rsp_cd": "IGW00121", "rsp_msg": "invalid token"}),
        httpx.Response(200, json=T8425_BODY),
    ]
    tokens = FakeTokens()
    client = LSClient(ls_settings, tokens, RecordingLimiter(), http=http_client)

    assert await client.execute(_descriptor()) == T8425_BODY
    assert len(tokens.refreshes) == 1


@pytest.mark.asyncio
@respx.mock
async def test_non_auth_error_is_translated_and_not_retried(ls_settings, http_client) -> None:
    route = respx.post(_url(ls_settings)).mock(
        return_value=httpx.Response(404, json={"rsp_cd": "IGW00404", "rsp_msg": "no such TR"})
    )
    tokens = FakeTokens()
    client = LSClient(ls_settings, tokens, RecordingLimiter(), http=http_client)

    with pytest.raises(LSError) as excinfo:
        await client.execute(_descriptor())

    assert excinfo.value.code == "404"
    assert excinfo.value.message == "no such TR"
    assert excinfo.value.raw_payload == {"rsp_cd": "IGW00404", "rsp_msg": "no such TR"}
    assert route.call_count == 1
    assert tokens.refreshes == []


@pytest.mark.asyncio
@respx.mock
async def test_timeout_is_network_error(ls_settings, http_client) -> None:
    route = respx.post(_url(ls_settings)).mock(side_effect=httpx.ReadTimeout("slow"))
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    with pytest.raises(LSError) as excinfo:
        await client.execute(_descriptor())

    assert excinfo.value.code == "NETWORK"
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_missing_required_block_is_schema_error(ls_settings, http_client) -> None:
    respx.post(_url(ls_settings)).mock(
        return_value=httpx.Response(200, json={"rsp_cd": "00000", "t1533OutBlock1": []})
    )
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    with pytest.raises(LSResponseValidationError) as excinfo:
        await client.execute(
            _descriptor(operation_code="t1533", body={"t1533InBlock": {"gubun": "1", "chgdate": 0}})
        )
    assert excinfo.value.code == "SCHEMA"


@pytest.mark.asyncio
@respx.mock
async def test_non_json_body_is_schema_error(ls_settings, http_client) -> None:
    respx.post(_url(ls_settings)).mock(return_value=httpx.Response(200, text="<html>oops</html>"))
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    with pytest.raises(LSResponseValidationError):
        await client.execute(_descriptor())


@pytest.mark.asyncio
@respx.mock
async def test_unknown_tr_code_skips_schema_validation(ls_settings, http_client) -> None:
    respx.post(_url(ls_settings)).mock(return_value=httpx.Response(200, json={"anything": 1}))
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    assert await client.execute(_descriptor(operation_code="t9999")) == {"anything": 1}


@pytest.mark.asyncio
@respx.mock
async def test_timeout_override_is_applied(ls_settings, http_client) -> None:
    route = respx.post(_url(ls_settings)).mock(return_value=httpx.Response(200, json=T8425_BODY))
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    await client.execute(_descriptor(timeout_override=2.5))

    timeout = route.calls.last.request.extensions["timeout"]
    assert timeout["read"] == 2.5


@pytest.mark.asyncio
async def test_aclose_only_closes_owned_client(ls_settings, http_client) -> None:
    injected = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)
    await injected.aclose()
    assert not http_client.is_closed

    owned = LSClient(ls_settings, FakeTokens(), RecordingLimiter())
    await owned.aclose()
    assert owned._http.is_closed


@pytest.mark.asyncio
@respx.mock
async def test_auth_retry_transitions_are_logged(
    ls_settings, http_client, caplog: pytest.LogCaptureFixture
) -> None:
    respx.post(_url(ls_settings)).mock(
        return_value=httpx.Response(401, json={"rsp_cd": "IGW00121", "rsp_msg": "token expired"})
    )
    client = LSClient(ls_settings, FakeTokens(), RecordingLimiter(), http=http_client)

    with caplog.at_level(logging.WARNING, logger=client_module.__name__):
        with pytest.raises(LSError):
            await client.execute(_descriptor())

    refreshing = [r for r in caplog.records if r.getMessage() == "ls.request.auth_failure_refreshing"]
    failed = [r for r in caplog.records if r.getMessage() == "ls.request.failed"]
    assert [r.state for r in refreshing] == ["refreshing"]
    assert len(failed) == 1
    assert failed[0].state == "failed"
    assert failed[0].failed_in == "sent"
    assert failed[0].retried is True


class BrokenStoreTokens(FakeTokens):
    async def get_valid_token(self) -> str:
        raise RedisConnectionError("redis down")


@pytest.mark.asyncio
async def test_credential_store_failure_is_counted_and_propagated(
    ls_settings, http_client, caplog: pytest.LogCaptureFixture
) -> None:
    client = LSClient(ls_settings, BrokenStoreTokens(), RecordingLimiter(), http=http_client)
    labels = {"tr_cd": "t8425", "code": "ConnectionError"}
    before = REGISTRY.get_sample_value("ls_gateway_errors_total", labels) or 0.0

    with caplog.at_level(logging.WARNING, logger=client_module.__name__):
        with pytest.raises(RedisConnectionError):
            await client.execute(_descriptor())

    assert REGISTRY.get_sample_value("ls_gateway_errors_total", labels) == before + 1
    failed = [r for r in caplog.records if r.getMessage() == "ls.request.failed"]
    assert len(failed) == 1
    assert failed[0].code == "ConnectionError"
    assert failed[0].failed_in == "init"
