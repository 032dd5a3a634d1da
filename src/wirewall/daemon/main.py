from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version as pkg_version

import uvicorn
from fastapi import FastAPI, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from wirewall.errors import WirewallError
from wirewall.observability import configure_logging, install_control_observability
from wirewall.schemas import IntrospectionResponse, OperationArgument, OperationDescription, OperationResponse
from wirewall.settings import Settings, ensure_run_dir, get_settings

from .lock import ServiceNameLock
from .state import WirewallDaemon
from .system import NsupdateDns, WgTunnel

logger = logging.getLogger("wirewall.daemon")


def _app_version() -> str:
    try:
        return pkg_version("wirewall")
    except PackageNotFoundError:
        return "dev"
    except Exception:
        return "unknown"


def _error_text(exc: Exception) -> str:
    if isinstance(exc, WirewallError):
        return str(exc)
    return f"internal error: {exc.__class__.__name__}: {exc}"


def _operation(fn, name: str) -> JSONResponse:  # noqa: ANN001
    # Nothing raised by an operation may cross the control socket.
    try:
        fn()
    except Exception as exc:  # noqa: BLE001
        if not isinstance(exc, WirewallError):
            logger.exception("operation_unexpected op=%s", name)
        body = OperationResponse(error=_error_text(exc))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())
    return JSONResponse(status_code=status.HTTP_200_OK, content=OperationResponse().model_dump())


def describe_service(settings: Settings) -> IntrospectionResponse:
    error_out = [OperationArgument(name="error", type="string", direction="out")]
    return IntrospectionResponse(
        service=settings.service_name,
        version=_app_version(),
        operations=[
            OperationDescription(name="Configure", method="POST", path="/v1/configure", args=error_out),
            OperationDescription(name="Reload", method="POST", path="/v1/reload", args=error_out),
        ],
    )


def create_app(settings: Settings, daemon: WirewallDaemon) -> FastAPI:
    app = FastAPI(title="wirewalld", version=_app_version())
    install_control_observability(app)
    introspection = describe_service(settings)

    # Plain `def` handlers run in the worker thread pool; the daemon lock orders them.
    @app.post("/v1/configure", response_model=OperationResponse)
    def configure() -> JSONResponse:
        return _operation(daemon.configure, "configure")

    @app.post("/v1/reload", response_model=OperationResponse)
    def reload() -> JSONResponse:
        return _operation(daemon.reload, "reload")

    @app.get("/v1/introspect", response_model=IntrospectionResponse)
    async def introspect() -> IntrospectionResponse:
        return introspection

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def build_daemon(settings: Settings) -> WirewallDaemon:
    return WirewallDaemon(settings, tunnel=WgTunnel(settings), dns=NsupdateDns(settings))


def serve(settings: Settings, daemon: WirewallDaemon) -> None:
    app = create_app(settings, daemon)
    socket_path = settings.socket_path
    # Only the owner of the service name gets here, so a leftover socket is stale.
    socket_path.unlink(missing_ok=True)
    logger.info("serving name=%s socket=%s", settings.service_name, socket_path)
    uvicorn.run(
        app,
        uds=str(socket_path),
        log_level=settings.log_level.lower(),
        access_log=False,
    )


def run(settings: Settings | None = None) -> int:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    daemon = build_daemon(settings)
    try:
        daemon.start()
    except WirewallError as exc:
        logger.error("startup_failed error=%s", exc)
        return 1

    ensure_run_dir(settings)
    lock = ServiceNameLock(settings.service_name, settings.lock_path)
    try:
        lock.acquire()
    except WirewallError as exc:
        logger.error("startup_failed error=%s", exc)
        return 1

    try:
        serve(settings, daemon)
    finally:
        lock.release()
    return 0


def main() -> None:
    try:
        code = run()
    except Exception:
        logging.getLogger("wirewall.daemon").exception("startup_crashed")
        code = 2
    raise SystemExit(code)


if __name__ == "__main__":
    main()
