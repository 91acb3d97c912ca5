# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain Entity: CachedToken.

Synopsis:
    Bearer credential shared by every gateway replica through the credential
    store. Replaced by each successful refresh and read by every request.

Layer:
    domain/entities
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class CachedToken:
    """Bearer token with its validity window.

    Attributes:
        value: Opaque bearer value sent as ``authorization: Bearer <value>``.
        expires_at: Expiry instant, epoch seconds.
        issued_at: Issue instant, epoch seconds.
    """

    value: str
    expires_at: float
    issued_at: float

    def is_valid(self, now: float, refresh_buffer_s: float) -> bool:
        """Return True if the token can be used without contacting the API.

        Args:
            now: Current instant, epoch seconds.
            refresh_buffer_s: Seconds before expiry at which the token is
                considered due for refresh.
        """
        return now < self.expires_at - refresh_buffer_s

    def to_json(self) -> str:
        """Serialize for the credential store."""
        return json.dumps(
            {
                "access_token": self.value,
                "expires_at": self.expires_at,
                "issued_at": self.issued_at,
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes | None) -> CachedToken | None:
        """Parse a stored token; unreadable values count as absent.

        Args:
            raw: Value read from the credential store.

        Returns:
            The token, or ``None`` if ``raw`` is missing or malformed.
        """
        if not raw:
            return None
        try:
            data: Any = json.loads(raw)
            return cls(
                value=str(data["access_token"]),
                expires_at=float(data["expires_at"]),
                issued_at=float(data.get("issued_at", 0.0)),
            )
        except (ValueError, TypeError, KeyError):
            return None
