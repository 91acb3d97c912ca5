# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities external API package.

Purpose:
    Group LS Securities infrastructure modules:

    * settings: Pydantic settings for the LS Open API.
    * token_manager: Shared bearer token cache with a distributed refresh lock.
    * client: Rate-limited request executor with a single auth retry.
    * pagination: Continuation (``tr_cont``) iteration helpers.
    * errors: Translation of transport failures into ``LSError``.
    * types: Per-TR response schemas.
"""

from __future__ import annotations
