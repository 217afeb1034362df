"""
Prometheus metrics for the Messagely API.

This module provides:
- HTTP request counter (method, path, status)
- Auth outcome counter (result)
- Message event counter (event)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: registered, conflict, invalid_input, login_ok, login_failed
auth_requests_total = Counter(
    "auth_requests_total",
    "Total registration and login outcomes",
    labelnames=["result"]
)

# event: created, read
messages_events_total = Counter(
    "messages_events_total",
    "Total message ledger events",
    labelnames=["event"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template (e.g. /users/{username}), or the raw path if unmatched
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_auth_outcome(result: str) -> None:
    """Record a registration or login outcome."""
    auth_requests_total.labels(result=result).inc()


def record_message_event(event: str) -> None:
    """Record a message being created or marked read."""
    messages_events_total.labels(event=event).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
