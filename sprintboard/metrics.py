"""Prometheus metrics export for the sprint board."""

from __future__ import annotations

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from sprintboard import __version__
from sprintboard.config import settings

logger = logging.getLogger(__name__)

# ── Registry ──

registry = CollectorRegistry()


# ── HTTP Metrics ──

http_requests_total = Counter(
    "sprintboard_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "sprintboard_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry,
)

http_requests_in_progress = Gauge(
    "sprintboard_http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"],
    registry=registry,
)


# ── Analytics Metrics ──

spillover_upserts_total = Counter(
    "sprintboard_spillover_upserts_total",
    "Spillover rows written by the upsert pass",
    ["outcome"],  # ok, failed
    registry=registry,
)

sprint_health_score = Histogram(
    "sprintboard_sprint_health_score",
    "Distribution of computed sprint health scores",
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
    registry=registry,
)


# ── Timeline Metrics ──

timeline_commits_total = Counter(
    "sprintboard_timeline_commits_total",
    "Optimistic timeline commits by kind and outcome",
    ["kind", "outcome"],  # kind: dates, summary; outcome: ok, reverted
    registry=registry,
)


# ── Analysis Service Metrics ──

analysis_requests_total = Counter(
    "sprintboard_analysis_requests_total",
    "Sprint analysis requests sent to the analysis service",
    ["provider", "status"],
    registry=registry,
)

analysis_duration_seconds = Histogram(
    "sprintboard_analysis_duration_seconds",
    "Analysis service request duration",
    ["provider"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0),
    registry=registry,
)


# ── System Info ──

build_info = Info(
    "sprintboard_build_info",
    "Sprint board build information",
    registry=registry,
)

build_info.info({
    "version": __version__,
    "environment": settings.environment,
})


# ── Exposition ──


def metrics_response() -> Response:
    """Render the registry in Prometheus text format."""
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


async def track_http_metrics(request: Request, call_next):
    """HTTP middleware recording request counts and latency.

    The route template (``/api/tasks/{task_id}``) is used as the label so ids
    do not explode label cardinality.
    """
    method = request.method
    http_requests_in_progress.labels(method=method).inc()
    start = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        http_requests_in_progress.labels(method=method).dec()
        http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(time.perf_counter() - start)
