"""Prometheus metrics middleware and auction engine metrics."""
import re
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Bid-specific metrics
BID_OUTCOMES = Counter(
    "auction_bids_total",
    "Bid attempts by outcome",
    ["outcome"],  # accepted, duplicate, bid_too_low, auction_not_open, timeout, ...
)

BID_LATENCY = Histogram(
    "auction_bid_latency_seconds",
    "Bid request latency in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

AUTO_BIDS = Counter(
    "auction_auto_bids_total",
    "Bids placed by proxy bidding",
)

# Auction lifecycle metrics
AUCTIONS_CLOSED = Counter(
    "auctions_closed_total",
    "Auctions moved to a terminal status by the closer",
    ["status"],
)

AUCTION_LOCK_WAIT = Histogram(
    "auction_lock_wait_seconds",
    "Time spent waiting for a per-auction lock",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0, 2.0],
)

NOTIFICATIONS_DROPPED = Counter(
    "auction_notifications_dropped_total",
    "Events not delivered because the outbox was full or delivery failed",
    ["reason"],
)


# =============================================================================
# Metrics Middleware
# =============================================================================

_UUID_SEGMENT = re.compile(
    r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        # Track active requests
        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time

            # Normalize endpoint for metrics (reduce cardinality)
            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

            if request.method == "POST" and endpoint in (
                "/api/v1/auctions/{id}/bids",
                "/api/v1/auctions/{id}/buy-now",
            ):
                BID_LATENCY.observe(latency)

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Replace ids in the path so each route is one label value."""
        if path.startswith("/api/v1/") or path.startswith("/ws/"):
            return _UUID_SEGMENT.sub("/{id}", path)

        # Keep health and other endpoints as-is
        if path in ("/health", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_bid_outcome(outcome: str, auto_bids: int = 0) -> None:
    """Record the outcome of one bid attempt."""
    BID_OUTCOMES.labels(outcome=outcome).inc()
    if auto_bids:
        AUTO_BIDS.inc(auto_bids)


def record_auction_closed(status: str) -> None:
    AUCTIONS_CLOSED.labels(status=status).inc()


def record_lock_wait(duration: float) -> None:
    AUCTION_LOCK_WAIT.observe(duration)


def record_notification_dropped(reason: str) -> None:
    NOTIFICATIONS_DROPPED.labels(reason=reason).inc()
