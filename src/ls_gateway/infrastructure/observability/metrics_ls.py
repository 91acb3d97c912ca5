# src/ls_gateway/infrastructure/observability/metrics_ls.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""LS Securities gateway Prometheus metrics.

Exports
-------
Collectors (names are part of the public contract and must remain stable):

* ``ls_gateway_request_latency_seconds`` (Histogram)
* ``ls_gateway_errors_total`` (Counter)
* ``ls_gateway_auth_retries_total`` (Counter)
* ``ls_gateway_token_refresh_total`` (Counter)
* ``ls_gateway_token_lock_contended_total`` (Counter)
* ``ls_gateway_rate_limit_wait_seconds`` (Histogram)
* ``ls_gateway_pagination_truncated_total`` (Counter)
* ``ls_gateway_credential_store_operation_duration_seconds`` (Histogram)

Design
------
All collectors are created lazily against the *current* default registry
(:data:`prometheus_client.REGISTRY`). If a collector with the same name already
exists in the active registry, the existing instance is reused instead of
registering a duplicate, which keeps module re-imports and registry swaps in
tests safe. Callers record metrics best-effort (``suppress(Exception)``) so a
metrics failure never fails a request.
"""

from __future__ import annotations

from collections.abc import Sequence

import prometheus_client as prom
from prometheus_client import Counter, Histogram
from prometheus_client.registry import CollectorRegistry

_WAIT_BUCKETS = (0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)


def _get_or_create_histogram(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
    buckets: Sequence[float] | None = None,
) -> Histogram:
    """Return a histogram bound to the current default registry.

    1. Look up an existing collector with the given name in the current
       :data:`prom.REGISTRY` and reuse it if it is a :class:`Histogram`.
    2. Otherwise, attempt to register a new histogram on the same registry.
    3. If a concurrent registration caused a ``Duplicated timeseries`` error,
       look up the collector again and reuse it.

    Args:
        name: Metric name.
        doc: Human-readable metric description.
        labelnames: Optional iterable of label names.
        buckets: Optional bucket boundaries.

    Returns:
        A :class:`Histogram` bound to the current :data:`prom.REGISTRY`.
    """
    registry: CollectorRegistry = prom.REGISTRY
    mapping = getattr(registry, "_names_to_collectors", {})
    existing = mapping.get(name)
    if isinstance(existing, Histogram):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        if buckets is not None:
            return Histogram(name, doc, labels, registry=registry, buckets=tuple(buckets))
        return Histogram(name, doc, labels, registry=registry)
    except ValueError as exc:
        if "Duplicated timeseries" in str(exc):
            mapping = getattr(registry, "_names_to_collectors", {})
            again = mapping.get(name)
            if isinstance(again, Histogram):
                return again
        raise


def _get_or_create_counter(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
) -> Counter:
    """Return a counter bound to the current default registry.

    Mirrors :func:`_get_or_create_histogram`, but for :class:`Counter` collectors.
    Counters are registered under their base name; the client library exposes
    them with a ``_total`` suffix, which is also how they are looked up.
    """
    registry: CollectorRegistry = prom.REGISTRY
    mapping = getattr(registry, "_names_to_collectors", {})
    base = name[: -len("_total")] if name.endswith("_total") else name
    existing = mapping.get(name) or mapping.get(base)
    if isinstance(existing, Counter):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        return Counter(base, doc, labels, registry=registry)
    except ValueError as exc:
        if "Duplicated timeseries" in str(exc):
            mapping = getattr(registry, "_names_to_collectors", {})
            again = mapping.get(name) or mapping.get(base)
            if isinstance(again, Counter):
                return again
        raise


def get_request_latency_seconds() -> Histogram:
    """Latency of LS API calls by TR code and outcome."""
    return _get_or_create_histogram(
        "ls_gateway_request_latency_seconds",
        "Latency of LS Securities API calls (seconds).",
        labelnames=("tr_cd", "outcome"),
    )


def get_errors_total() -> Counter:
    """Errors surfaced to callers by TR code and error code."""
    return _get_or_create_counter(
        "ls_gateway_errors_total",
        "Errors surfaced by the LS Securities gateway.",
        labelnames=("tr_cd", "code"),
    )


def get_auth_retries_total() -> Counter:
    """Forced-refresh retries triggered by rejected tokens."""
    return _get_or_create_counter(
        "ls_gateway_auth_retries_total",
        "Retries after the LS Securities API rejected the bearer token.",
        labelnames=("tr_cd",),
    )


def get_token_refresh_total() -> Counter:
    """Token endpoint calls by result (``success`` / ``error``)."""
    return _get_or_create_counter(
        "ls_gateway_token_refresh_total",
        "Calls made to the LS Securities token endpoint.",
        labelnames=("result",),
    )


def get_token_lock_contended_total() -> Counter:
    """Refresh attempts that found the lock held by another process."""
    return _get_or_create_counter(
        "ls_gateway_token_lock_contended_total",
        "Token refreshes that waited on another holder of the refresh lock.",
    )


def get_rate_limit_wait_seconds() -> Histogram:
    """Time spent waiting for a rate-limiter slot by TR code."""
    return _get_or_create_histogram(
        "ls_gateway_rate_limit_wait_seconds",
        "Time callers waited for a per-TR rate-limiter slot (seconds).",
        labelnames=("tr_cd",),
        buckets=_WAIT_BUCKETS,
    )


def get_pagination_truncated_total() -> Counter:
    """Continuation loops stopped by the page-count safety bound."""
    return _get_or_create_counter(
        "ls_gateway_pagination_truncated_total",
        "Continuation queries stopped by the max-page safety bound.",
        labelnames=("tr_cd",),
    )


def get_credential_store_operation_duration_seconds() -> Histogram:
    """Latency of credential store operations."""
    return _get_or_create_histogram(
        "ls_gateway_credential_store_operation_duration_seconds",
        "Latency of credential store operations (seconds).",
        labelnames=("operation",),
    )
