"""Prometheus metric definitions for webhook processing."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


webhook_events_total = Counter(
    "webhook_events_total",
    "Total gateway webhook events by outcome",
    ["service", "source", "event_type", "outcome"],
)
webhook_processing_seconds = Histogram(
    "webhook_processing_seconds",
    "Webhook handler duration seconds",
    ["service", "event_type"],
)
token_credits_total = Counter(
    "token_credits_total",
    "Token wallet credit attempts by outcome",
    ["service", "outcome"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Webhook events short-circuited as already processed",
    ["service", "event_type"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
