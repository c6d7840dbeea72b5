"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Negotiation metrics
negotiation_actions = Counter(
    'negotiation_actions_total',
    'Negotiation actions processed',
    ['action', 'result']  # propose/accept/decline/open, success/rejected/replayed
)

# Contract metrics
contract_actions = Counter(
    'contract_actions_total',
    'Contract lifecycle actions processed',
    ['action', 'result']  # initiate/review/edit/accept/sign/finalize, success/rejected/replayed
)

contracts_voided = Counter(
    'contracts_voided_total',
    'Contracts voided',
    ['reason']  # contract_deadline_expired, admin_rejected
)

deadline_sweep_duration = Histogram(
    'deadline_sweep_duration_seconds',
    'Duration of a contract deadline sweep',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# Locking metrics
entity_lock_wait = Histogram(
    'entity_lock_wait_seconds',
    'Time spent waiting for an entity lock',
    ['kind'],  # booking, contract
    buckets=[0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

redis_lock_errors = Counter(
    'redis_lock_errors_total',
    'Redis lock errors (lock falls back to in-process only)'
)

redis_lock_fail_open = Gauge(
    'redis_lock_fail_open',
    'Redis lock state (1=failing open to in-process locks, 0=healthy)'
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


def record_negotiation_action(action: str, result: str):
    """Record negotiation action. Result: success, rejected, replayed"""
    negotiation_actions.labels(action=action, result=result).inc()


def record_contract_action(action: str, result: str):
    """Record contract action. Result: success, rejected, replayed"""
    contract_actions.labels(action=action, result=result).inc()


def record_contract_voided(reason: str):
    contracts_voided.labels(reason=reason).inc()
