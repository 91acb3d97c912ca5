# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities response schemas (per TR code).

Only the fields the gateway relies on are declared; everything else the API
sends is kept (``extra="allow"``) so callers still see the full payload.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ls_gateway.domain.exceptions.ls_securities import LSResponseValidationError


class LSResponse(BaseModel):
    """Envelope common to every TR response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    rsp_cd: str = ""
    rsp_msg: str = ""


# --------------------------------------------------------------------------- #
# t1533: special themes
# --------------------------------------------------------------------------- #


class T1533OutBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    bdate: str


class T1533Theme(BaseModel):
    model_config = ConfigDict(extra="allow")

    tmname: str
    tmcode: str
    totcnt: int = 0
    upcnt: int = 0
    dncnt: int = 0
    uprate: float = 0.0
    diff_vol: float = 0.0
    avgdiff: float = 0.0
    chgdiff: float = 0.0


class T1533Response(LSResponse):
    """Special themes ranked by ``gubun`` (rise rate, volume growth, ...)."""

    out_block: T1533OutBlock = Field(alias="t1533OutBlock")
    themes: list[T1533Theme] = Field(default_factory=list, alias="t1533OutBlock1")


# --------------------------------------------------------------------------- #
# t1537: stocks of one theme
# --------------------------------------------------------------------------- #


class T1537OutBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    tmname: str
    upcnt: int = 0
    tmcnt: int = 0
    uprate: float = 0.0


class T1537Stock(BaseModel):
    model_config = ConfigDict(extra="allow")

    shcode: str
    hname: str
    price: float = 0.0
    sign: str = ""
    change: float = 0.0
    diff: float = 0.0
    volume: float = 0.0
    jniltime: float = 0.0
    yeprice: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    value: float = 0.0
    marketcap: float = 0.0


class T1537Response(LSResponse):
    """Quotes of the stocks in one theme (``tmcode`` from t8425)."""

    out_block: T1537OutBlock = Field(alias="t1537OutBlock")
    stocks: list[T1537Stock] = Field(default_factory=list, alias="t1537OutBlock1")


# --------------------------------------------------------------------------- #
# t8425: all themes
# --------------------------------------------------------------------------- #


class T8425Theme(BaseModel):
    model_config = ConfigDict(extra="allow")

    tmname: str
    tmcode: str


class T8425Response(LSResponse):
    themes: list[T8425Theme] = Field(default_factory=list, alias="t8425OutBlock")


RESPONSE_SCHEMAS: dict[str, type[LSResponse]] = {
    "t1533": T1533Response,
    "t1537": T1537Response,
    "t8425": T8425Response,
}


def validate_response(operation_code: str, payload: Any) -> dict[str, Any]:
    """Check ``payload`` against the schema registered for ``operation_code``.

    The payload is returned unchanged (as a dict) so callers keep working with
    the raw TR field names; unregistered TR codes only need a JSON object.

    Raises:
        LSResponseValidationError: Not a JSON object, or required fields are
            missing or mistyped.
    """
    if not isinstance(payload, dict):
        raise LSResponseValidationError(
            f"{operation_code} response is not a JSON object",
            payload,
            details={"tr_cd": operation_code},
        )

    schema = RESPONSE_SCHEMAS.get(operation_code)
    if schema is None:
        return payload

    try:
        schema.model_validate(payload)
    except ValidationError as exc:
        raise LSResponseValidationError(
            f"{operation_code} response failed validation",
            payload,
            details={
                "tr_cd": operation_code,
                "errors": exc.errors(include_url=False, include_input=False),
            },
        ) from exc
    return payload
