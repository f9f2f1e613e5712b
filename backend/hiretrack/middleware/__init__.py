"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Lifecycle, snapshot and feed instrumentation helpers
"""

from hiretrack.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    TRANSITIONS,
    REJECTED_OPERATIONS,
    SNAPSHOT_LATENCY,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "TRANSITIONS",
    "REJECTED_OPERATIONS",
    "SNAPSHOT_LATENCY",
]
