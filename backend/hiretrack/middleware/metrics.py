"""
Prometheus Metrics Middleware

Provides request/response metrics for monitoring:
- HTTP request latency (p50, p95, p99)
- Request count by endpoint and status
- Active request gauge
- Lifecycle, counter, snapshot and feed metrics

Usage:
    from hiretrack.middleware.metrics import setup_metrics

    # In main.py
    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

# Request latency histogram with custom buckets for sub-second monitoring
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Request counter
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

# Active requests gauge
ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method", "endpoint"]
)

# Lifecycle metrics
TRANSITIONS = Counter(
    "application_transitions_total",
    "Committed application status transitions",
    ["from_status", "to_status"]
)

REJECTED_OPERATIONS = Counter(
    "lifecycle_rejections_total",
    "Lifecycle operations rejected before commit",
    ["reason"]  # IllegalTransition, Unauthorized, DuplicateApplication, ...
)

# Event bus metrics
EVENTS_PUBLISHED = Counter(
    "domain_events_published_total",
    "Domain events published to the bus",
    ["event_type"]
)

EVENTS_DROPPED = Counter(
    "domain_events_dropped_total",
    "Domain events dropped because a consumer queue was full or failed",
    ["consumer"]
)

# Counter maintenance
COUNTER_DRIFT_CORRECTED = Counter(
    "job_counter_drift_corrected_total",
    "Job counters rewritten by reconciliation",
    ["counter"]  # applications_count, views_count
)

# Snapshot metrics
SNAPSHOT_LATENCY = Histogram(
    "metric_snapshot_seconds",
    "Time to compute a metric snapshot",
    ["scope"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

SNAPSHOT_FIELD_FAILURES = Counter(
    "metric_snapshot_field_failures_total",
    "Snapshot fields that defaulted to zero after a query failure",
    ["field"]
)

# Cache metrics
CACHE_HITS = Counter(
    "cache_hits_total",
    "Total cache hits",
    ["layer"]
)

CACHE_MISSES = Counter(
    "cache_misses_total",
    "Total cache misses",
    ["layer"]
)

# Live feed
FEED_SUBSCRIBERS = Gauge(
    "feed_subscribers_active",
    "Open live feed subscriptions"
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records latency, count and in-flight gauge per routed endpoint."""

    def __init__(self, app: FastAPI, app_name: str = "hiretrack"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        """Process request and record metrics."""
        endpoint = self._get_endpoint(request)
        method = request.method

        # Skip metrics endpoint and long-lived feed streams
        if endpoint in ("/metrics", "/feed/stream"):
            return await call_next(request)

        ACTIVE_REQUESTS.labels(endpoint=endpoint, method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status = str(response.status_code)
        except Exception as e:
            status = "500"
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time
            labels = {"method": method, "endpoint": endpoint}
            REQUEST_LATENCY.labels(status=status, **labels).observe(duration)
            REQUEST_COUNT.labels(status=status, **labels).inc()
            ACTIVE_REQUESTS.labels(**labels).dec()

        return response

    def _get_endpoint(self, request: Request) -> str:
        """
        Get normalized endpoint path from request.

        Uses route pattern (e.g., /applications/{application_id}) instead of
        actual path to avoid high cardinality. Mounted or included routers
        carry no path of their own; their matched child route is used, or
        the raw path when none is exposed.
        """
        for route in request.app.routes:
            match, child_scope = route.matches(request.scope)
            if match == Match.FULL:
                matched = child_scope.get("route", route)
                return getattr(matched, "path", request.url.path)

        return request.url.path


def metrics_endpoint(request: Request) -> Response:
    """
    Endpoint handler for Prometheus metrics scraping.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """
    Configure Prometheus metrics for FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(PrometheusMiddleware, app_name="hiretrack")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_transition(from_status: str, to_status: str) -> None:
    """Record a committed status transition."""
    TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()


def record_rejection(reason: str) -> None:
    """Record a lifecycle operation rejected with a validation error."""
    REJECTED_OPERATIONS.labels(reason=reason).inc()


def record_event_published(event_type: str) -> None:
    EVENTS_PUBLISHED.labels(event_type=event_type).inc()


def record_event_dropped(consumer: str) -> None:
    EVENTS_DROPPED.labels(consumer=consumer).inc()


def record_counter_drift(counter: str, amount: int = 1) -> None:
    """Record counters rewritten by reconciliation."""
    COUNTER_DRIFT_CORRECTED.labels(counter=counter).inc(amount)


def record_snapshot_latency(scope: str, duration: float) -> None:
    """Record metric snapshot computation latency."""
    SNAPSHOT_LATENCY.labels(scope=scope).observe(duration)


def record_snapshot_field_failure(field: str) -> None:
    SNAPSHOT_FIELD_FAILURES.labels(field=field).inc()


def record_cache_hit(layer: str) -> None:
    """Record a cache hit for the specified layer."""
    CACHE_HITS.labels(layer=layer).inc()


def record_cache_miss(layer: str) -> None:
    """Record a cache miss for the specified layer."""
    CACHE_MISSES.labels(layer=layer).inc()


def update_feed_subscribers(count: int) -> None:
    """Update open feed subscription gauge."""
    FEED_SUBSCRIBERS.set(count)
