"""Prometheus metrics definitions for the SigV4 middleware.

All metrics use the ``sigv4_`` prefix. They are registered in the global
``prometheus_client`` registry only after ``init_metrics()`` is called;
until then the module-level references stay ``None`` and the middleware
skips them.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

requests_signed_total: Counter | None = None
body_read_failures_total: Counter | None = None
request_body_bytes_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; collectors are registered only on the
    first call.
    """
    global _initialized
    global requests_signed_total, body_read_failures_total, request_body_bytes_total

    if _initialized:
        return

    requests_signed_total = Counter(
        "sigv4_requests_signed_total",
        "Total requests signed, by service and region",
        ["service", "region"],
    )

    body_read_failures_total = Counter(
        "sigv4_body_read_failures_total",
        "Total requests aborted because the body could not be read",
    )

    request_body_bytes_total = Counter(
        "sigv4_request_body_bytes_total",
        "Total request body bytes hashed for signing",
    )

    _initialized = True
