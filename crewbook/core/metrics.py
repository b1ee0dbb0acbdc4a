"""
Metrics instrumentation for the booking/attendance core.
Exposes Prometheus-compatible metrics; the reference service serves them at /metrics.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Scan verification metrics
scan_attempts = Counter(
    'crewbook_scan_attempts_total',
    'QR scan verification attempts',
    ['action', 'result']  # checkin/checkout/none, success or error kind
)

# Manual transition metrics
status_updates = Counter(
    'crewbook_status_updates_total',
    'Manual booking status updates',
    ['target', 'result']
)

# Concurrency guard metrics
guard_rejections = Counter(
    'crewbook_guard_rejections_total',
    'Requests rejected because the same key was already in flight',
    ['scope']  # scan, status
)

redis_guard_errors = Counter(
    'crewbook_redis_guard_errors_total',
    'Redis errors in the shared in-flight guard (guard failed open)'
)

# Remote call metrics
remote_call_latency = Histogram(
    'crewbook_remote_call_latency_seconds',
    'Booking service call latency',
    ['operation'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Reference service metrics
verifications_processed = Counter(
    'crewbook_service_verifications_total',
    'Scan verifications handled by the reference booking service',
    ['action', 'outcome']  # accepted, rejected
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_scan_attempt(action: str, result: str):
    """Record scan attempt. Result: success or an error kind value."""
    scan_attempts.labels(action=action, result=result).inc()


def record_status_update(target: str, result: str):
    status_updates.labels(target=target, result=result).inc()


def record_guard_rejection(scope: str):
    guard_rejections.labels(scope=scope).inc()


def record_verification(action: str, accepted: bool):
    outcome = "accepted" if accepted else "rejected"
    verifications_processed.labels(action=action, outcome=outcome).inc()
