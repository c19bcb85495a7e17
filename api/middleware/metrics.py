"""
Prometheus metrics middleware for the Yuvna lead intelligence API.

Exposes /metrics endpoint with request counters, latency histograms,
and lead intelligence business metrics.
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
    "yuvna_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "yuvna_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "yuvna_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
SIGNAL_COUNT = Counter(
    "yuvna_intent_signals_total",
    "Intent signals extracted from buyer messages",
    ["signal"],
)
LEAD_CATEGORY_COUNT = Counter(
    "yuvna_lead_classifications_total",
    "Lead score categories assigned after a buyer interaction",
    ["category"],
)
ESCALATION_COUNT = Counter(
    "yuvna_escalations_total",
    "Escalation state changes",
    ["transition"],
)
FALLBACK_COUNT = Counter(
    "yuvna_llm_fallbacks_total",
    "Replies served in limited mode",
    ["operation"],
)
LLM_LATENCY = Histogram(
    "yuvna_llm_duration_seconds",
    "LLM generation latency",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)


def record_signals(signals):
    """Record extracted intent signals."""
    for signal in signals:
        SIGNAL_COUNT.labels(signal=getattr(signal, "value", signal)).inc()


def record_lead_category(category: str):
    """Record a lead classification."""
    LEAD_CATEGORY_COUNT.labels(category=category).inc()


def record_escalation(transition: str):
    """Record an escalation transition (triggered, confirmed, dismissed, reset)."""
    ESCALATION_COUNT.labels(transition=transition).inc()


def record_fallback(operation: str):
    """Record a limited-mode reply."""
    FALLBACK_COUNT.labels(operation=operation).inc()


def record_llm_latency(seconds: float):
    """Record LLM generation latency."""
    LLM_LATENCY.observe(seconds)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        # Route template keeps buyer / deal ids out of the label set
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
