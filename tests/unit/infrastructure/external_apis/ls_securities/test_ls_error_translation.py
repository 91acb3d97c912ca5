# tests/unit/infrastructure/external_apis/ls_securities/test_ls_error_translation.py
from __future__ import annotations

import httpx
import pytest

from ls_gateway.domain.exceptions.ls_securities import LSError, LSTokenError
from ls_gateway.infrastructure.external_apis.ls_securities.errors import (
    DEFAULT_API_ERROR_MESSAGE,
    to_domain_error,
)

URL = "https://openapi.ls-sec.co.kr:8080/stock/sector"


def _status_error(status: int, **kwargs) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", URL)
    response = httpx.Response(status, request=request, **kwargs)
    return httpx.HTTPStatusError("upstream error", request=request, response=response)


def test_structured_404_maps_code_and_message() -> None:
    payload = {"rsp_cd": "IGW00404", "rsp_msg": "존재하지 않는 TR입니다."}

    err = to_domain_error(_status_error(404, json=payload))

    assert err.code == "404"
    assert err.message == "존재하지 않는 TR입니다."
    assert err.raw_payload == payload
    assert err.details == {"rsp_cd": "IGW00404"}


def test_status_without_message_uses_generic_text() -> None:
    err = to_domain_error(_status_error(500, text="Internal Server Error"))

    assert err.code == "500"
    assert err.message == DEFAULT_API_ERROR_MESSAGE
    assert err.raw_payload == "Internal Server Error"


def test_connection_refused_maps_to_network() -> None:
    request = httpx.Request("POST", URL)

    err = to_domain_error(httpx.ConnectError("Connection refused", request=request))

    assert err.code == "NETWORK"
    assert err.details == {"reason": "ConnectError"}
    assert err.raw_payload is None


def test_timeout_maps_to_network() -> None:
    assert to_domain_error(httpx.ReadTimeout("timed out")).code == "NETWORK"


def test_ls_errors_pass_through_unchanged() -> None:
    original = LSTokenError("no token")
    assert to_domain_error(original) is original


def test_programming_errors_are_reraised() -> None:
    with pytest.raises(KeyError):
        to_domain_error(KeyError("oops"))


def test_ls_error_repr_shows_code() -> None:
    assert repr(LSError("404", "missing")) == "LSError(code='404', message='missing')"
