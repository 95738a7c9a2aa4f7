"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Scoring and task metric helpers
"""

from app.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    CACHE_HITS,
    CACHE_MISSES,
    PAIRS_COMPUTED,
    PAIRS_SKIPPED,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "CACHE_HITS",
    "CACHE_MISSES",
    "PAIRS_COMPUTED",
    "PAIRS_SKIPPED",
]
