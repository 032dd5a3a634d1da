from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram

_CONTROL_REQUESTS_TOTAL = Counter(
    "wirewall_control_requests_total",
    "Control requests served by wirewalld, by endpoint and outcome",
    labelnames=["endpoint", "result"],
)
_CONTROL_REQUEST_DURATION_SECONDS = Histogram(
    "wirewall_control_request_duration_seconds",
    "Control request duration in seconds, including the wait for the daemon lock",
    labelnames=["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

UNMATCHED_ENDPOINT = "unmatched"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
    )
    # Requests are logged by the control middleware below.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _endpoint_label(request: Request) -> str:
    # Handler name of the matched route: configure, reload, introspect, metrics.
    route = request.scope.get("route")
    name = getattr(route, "name", None)
    if isinstance(name, str) and name:
        return name
    return UNMATCHED_ENDPOINT


def _result_label(status_code: int) -> str:
    # Configure and Reload answer 500 with the error text when the operation fails.
    if status_code < 400:
        return "ok"
    if status_code >= 500:
        return "error"
    return "rejected"


def install_control_observability(app: FastAPI) -> None:
    logger = logging.getLogger("wirewall.daemon.control")

    @app.middleware("http")
    async def _control_observer(request: Request, call_next):  # noqa: ANN001, ANN202
        request_id = (request.headers.get("x-request-id") or "").strip() or uuid.uuid4().hex[:16]
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            endpoint = _endpoint_label(request)
            _CONTROL_REQUESTS_TOTAL.labels(endpoint, "error").inc()
            logger.exception("control_crashed endpoint=%s request_id=%s", endpoint, request_id)
            raise

        elapsed = max(0.0, time.perf_counter() - started)
        endpoint = _endpoint_label(request)
        result = _result_label(int(response.status_code))
        _CONTROL_REQUESTS_TOTAL.labels(endpoint, result).inc()
        _CONTROL_REQUEST_DURATION_SECONDS.labels(endpoint).observe(elapsed)
        response.headers.setdefault("x-request-id", request_id)

        log = logger.warning if result == "error" else logger.info
        log(
            "control endpoint=%s result=%s status=%s duration_ms=%.2f request_id=%s",
            endpoint,
            result,
            response.status_code,
            elapsed * 1000,
            request_id,
        )
        return response
