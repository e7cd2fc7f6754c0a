"""
Prometheus metrics configuration for the CrowdSec Dashboard

Provides application metrics for monitoring:
- HTTP request latency and counts
- Decision sync runs (outcome, duration, decisions processed)
- Live-update (SSE) subscribers
"""
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response
import time
import logging

logger = logging.getLogger(__name__)

# Create metrics router
metrics_router = APIRouter(tags=["metrics"])

# =============================================================================
# HTTP Metrics
# =============================================================================

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"]
)

# =============================================================================
# Sync Metrics
# =============================================================================

SYNC_RUNS_TOTAL = Counter(
    "crowdsec_sync_runs_total",
    "Total number of decision sync runs",
    ["outcome"]  # success, failed, skipped
)

SYNC_DURATION = Histogram(
    "crowdsec_sync_duration_seconds",
    "Decision sync run duration in seconds",
    ["mode"],  # full, delta
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120]
)

DECISIONS_PROCESSED = Counter(
    "crowdsec_decisions_processed_total",
    "Decisions processed by the sync",
    ["kind"]  # new, deleted, stale, pruned
)

ACTIVE_DECISIONS = Gauge(
    "crowdsec_active_decisions",
    "Number of active decisions after the last sync"
)

# =============================================================================
# Live update Metrics
# =============================================================================

SSE_SUBSCRIBERS = Gauge(
    "crowdsec_sse_subscribers",
    "Number of open live-update subscriptions",
    ["channel"]
)

SSE_DROPPED_SUBSCRIBERS = Counter(
    "crowdsec_sse_dropped_subscribers_total",
    "Subscribers dropped after a failed write",
    ["channel"]
)

# =============================================================================
# System Info
# =============================================================================

APP_INFO = Info(
    "crowdsec_dashboard",
    "CrowdSec Dashboard application information"
)

APP_INFO.info({
    "version": "0.1.0",
    "framework": "fastapi"
})

# =============================================================================
# Metrics Endpoint
# =============================================================================

@metrics_router.get("/metrics", include_in_schema=False)
async def metrics():
    """
    Prometheus metrics endpoint

    Returns all application metrics in Prometheus text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# =============================================================================
# Middleware for HTTP Metrics
# =============================================================================

def normalize_endpoint(path: str) -> str:
    """Replace numeric/UUID path segments to keep label cardinality low"""
    normalized_parts = []
    for part in path.split("/"):
        if part.isdigit() or (len(part) == 36 and "-" in part):
            normalized_parts.append("{id}")
        else:
            normalized_parts.append(part)
    return "/".join(normalized_parts)


async def metrics_middleware(request, call_next):
    """
    Middleware to collect HTTP request metrics
    """
    method = request.method
    endpoint = normalize_endpoint(request.url.path)

    HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()

    start_time = time.time()

    try:
        response = await call_next(request)
        status_code = str(response.status_code)

        duration = time.time() - start_time
        HTTP_REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code
        ).observe(duration)

        HTTP_REQUESTS_TOTAL.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code
        ).inc()

        return response

    except Exception:
        duration = time.time() - start_time
        HTTP_REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint,
            status_code="500"
        ).observe(duration)

        HTTP_REQUESTS_TOTAL.labels(
            method=method,
            endpoint=endpoint,
            status_code="500"
        ).inc()

        raise

    finally:
        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()


# =============================================================================
# Helper Functions for Sync Metrics
# =============================================================================

def record_sync_run(outcome: str, mode: str = None, duration: float = None):
    """Record a sync run and, for completed runs, its duration"""
    SYNC_RUNS_TOTAL.labels(outcome=outcome).inc()
    if duration is not None and mode is not None:
        SYNC_DURATION.labels(mode=mode).observe(duration)


def record_decisions_processed(kind: str, count: int):
    """Record decisions processed by kind (new, deleted, stale, pruned)"""
    if count > 0:
        DECISIONS_PROCESSED.labels(kind=kind).inc(count)


def update_active_decisions(count: int):
    ACTIVE_DECISIONS.set(count)


def update_sse_subscribers(channel: str, count: int):
    SSE_SUBSCRIBERS.labels(channel=channel).set(count)


def record_sse_subscriber_dropped(channel: str):
    SSE_DROPPED_SUBSCRIBERS.labels(channel=channel).inc()
