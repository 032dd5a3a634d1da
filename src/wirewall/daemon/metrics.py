from __future__ import annotations

import time

from prometheus_client import Counter, Gauge, Histogram

from wirewall.models import DaemonState

_OPERATIONS_TOTAL = Counter(
    "wirewall_operations_total",
    "Daemon operations by outcome",
    labelnames=["operation", "result"],
)
_OPERATION_DURATION_SECONDS = Histogram(
    "wirewall_operation_duration_seconds",
    "Wall time of daemon operations (load and reconcile)",
    labelnames=["operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)
_MANAGED_CLIENTS = Gauge(
    "wirewall_managed_clients",
    "Clients in the currently held client set",
)
_DNS_ENABLED = Gauge(
    "wirewall_dns_enabled",
    "1 when the held config enables DNS synchronization",
)
_LAST_SUCCESS_TIMESTAMP = Gauge(
    "wirewall_last_success_timestamp_seconds",
    "Unix time of the last fully successful reconciliation",
)


def observe_operation(operation: str, result: str, elapsed: float) -> None:
    _OPERATIONS_TOTAL.labels(operation, result).inc()
    _OPERATION_DURATION_SECONDS.labels(operation).observe(max(0.0, elapsed))
    if result == "ok":
        _LAST_SUCCESS_TIMESTAMP.set(time.time())


def observe_state(state: DaemonState) -> None:
    _MANAGED_CLIENTS.set(len(state.clients))
    _DNS_ENABLED.set(1 if state.config.zone is not None else 0)
