"""
Prometheus metrics for the request pipeline.

Metrics are registered on the default prometheus_client registry and can
be served through ``Server.expose_metrics()``.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQ_TOTAL = Counter(
    "quickserve_requests_total",
    "Total HTTP requests by classification",
    ["classification"],
)
REQ_ERRORS = Counter("quickserve_request_errors_total", "Requests that ended in a handler fault")
REQ_IN_FLIGHT = Gauge("quickserve_in_flight_requests", "In-flight requests")
REQ_LATENCY = Histogram("quickserve_request_duration_seconds", "Request duration seconds")
UPLOAD_FAILURES = Counter("quickserve_upload_failures_total", "Multipart file parts that failed to persist")


def render_metrics():
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
