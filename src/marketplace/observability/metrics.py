"""Prometheus metrics instrumentation for the marketplace engine.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the business metrics.
- ``OFFERS_CREATED``: Counter of offers submitted.
- ``ACTIVE_NEGOTIATIONS``: Gauge of negotiations currently IN_PROGRESS.
- ``DEALS_AGREED``: Counter of negotiations promoted to AGREED.
- ``NEGOTIATIONS_FAILED``: Counter of negotiations failed by REJECT or expiry.
- ``REQUESTS_COMPLETED``: Counter of requests finalized as COMPLETED.

Business metrics are updated after the transaction that caused them commits,
never by polling the database.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

OFFERS_CREATED: Counter = Counter(
    "marketplace_offers_created_total",
    "Total number of offers submitted against open requests",
)

ACTIVE_NEGOTIATIONS: Gauge = Gauge(
    "marketplace_active_negotiations",
    "Number of negotiations currently in progress",
)

DEALS_AGREED: Counter = Counter(
    "marketplace_deals_agreed_total",
    "Total number of negotiations reaching AGREED state",
)

NEGOTIATIONS_FAILED: Counter = Counter(
    "marketplace_negotiations_failed_total",
    "Total number of negotiations reaching FAILED state",
    ["reason"],
)

REQUESTS_COMPLETED: Counter = Counter(
    "marketplace_requests_completed_total",
    "Total number of requests reaching COMPLETED state",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
