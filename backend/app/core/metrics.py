"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Allocator metrics
waitlist_reactions = Counter(
    'waitlist_reactions_total',
    'Cancellation reactions handled by the allocator',
    ['result']  # allocated, conflict, no_priority_candidates, no_candidates, dropped, duplicate
)

allocation_latency = Histogram(
    'waitlist_allocation_latency_seconds',
    'Time spent in one allocator reaction',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

store_retries = Counter(
    'waitlist_store_retries_total',
    'Retries caused by transient store failures',
    ['operation']  # list_waiting, allocate
)

tier_lookup_failures = Counter(
    'waitlist_tier_lookup_failures_total',
    'Tier lookups that failed and fell back to the standard tier'
)

# Notification metrics
notifications_sent = Counter(
    'waitlist_notifications_total',
    'Notifications handed to the transport',
    ['kind', 'status']  # kind: winner/availability, status: sent/failed
)

# Sweeper metrics
entries_expired = Counter(
    'waitlist_entries_expired_total',
    'Waitlist entries moved to expired by the sweeper'
)

sweep_runs = Counter(
    'waitlist_sweep_runs_total',
    'Expiration sweep runs',
    ['status']  # completed, failed
)

# Redis metrics
redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
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


def record_reaction(result: str):
    """Record allocator reaction. See waitlist_reactions for labels."""
    waitlist_reactions.labels(result=result).inc()


def record_store_retry(operation: str):
    store_retries.labels(operation=operation).inc()


def record_notification(kind: str, sent: bool):
    """Record a notification attempt. Kind: winner, availability"""
    status = "sent" if sent else "failed"
    notifications_sent.labels(kind=kind, status=status).inc()
