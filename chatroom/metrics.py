"""
Prometheus metrics for the chat API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Chat event counter (event, result)
- Reaper tick counter (result) and eviction counter

Metrics are stored in-memory using prometheus-client.
"""

import re

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# event: join, post, edit, delete, heartbeat
# result: ok, conflict, not_found, unauthorized, invalid, error
chat_events_total = Counter(
    "chat_events_total",
    "Chat operations by outcome",
    labelnames=["event", "result"]
)

# result: evicted, noop, error
reaper_ticks_total = Counter(
    "reaper_ticks_total",
    "Presence reaper ticks by outcome",
    labelnames=["result"]
)

participants_evicted_total = Counter(
    "participants_evicted_total",
    "Participants removed for inactivity"
)


# =============================================================================
# Helper Functions
# =============================================================================

_MESSAGE_ID_PATH_RE = re.compile(r"^/messages/[^/]+$")


def normalize_path(path: str) -> str:
    """Collapse per-message paths to keep label cardinality bounded."""
    path = path.split("?")[0]
    if _MESSAGE_ID_PATH_RE.match(path):
        return "/messages/{id}"
    return path


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_chat_event(event: str, result: str) -> None:
    chat_events_total.labels(event=event, result=result).inc()


def record_reaper_tick(result: str, evicted: int = 0) -> None:
    """
    Record one reaper tick.

    Args:
        result: "evicted", "noop" or "error"
        evicted: Number of participants removed during the tick
    """
    reaper_ticks_total.labels(result=result).inc()
    if evicted:
        participants_evicted_total.inc(evicted)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
