"""
Prometheus metrics middleware for CarBot API.

Exposes /metrics endpoint with request counters, latency histograms,
and lead scoring business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "carbot_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "carbot_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "carbot_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
LEAD_SCORE_HIST = Histogram(
    "carbot_lead_score",
    "Lead score distribution",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
LEAD_CLASSIFICATION_COUNT = Counter(
    "carbot_lead_classification_total",
    "Lead classifications",
    ["classification"],
)
DEGRADED_SCORES = Counter(
    "carbot_lead_score_degraded_total",
    "Lead scores that fell back to the default",
)
CACHE_HITS = Counter("carbot_cache_hits_total", "Cache hits", ["cache_type"])
CACHE_MISSES = Counter("carbot_cache_misses_total", "Cache misses", ["cache_type"])


def record_lead_score(score: float, classification: str, degraded: bool = False):
    """Record a computed lead score."""
    if degraded:
        DEGRADED_SCORES.inc()
        return
    LEAD_SCORE_HIST.observe(score)
    LEAD_CLASSIFICATION_COUNT.labels(classification=classification).inc()


def record_cache_hit(cache_type: str):
    """Record a cache hit."""
    CACHE_HITS.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str):
    """Record a cache miss."""
    CACHE_MISSES.labels(cache_type=cache_type).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        finally:
            ACTIVE_REQUESTS.dec()

        duration = time.time() - start
        endpoint = request.url.path

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
