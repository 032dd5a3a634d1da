from __future__ import annotations

import argparse
import logging
import sys

import httpx

from wirewall.observability import configure_logging
from wirewall.settings import Settings, get_settings

logger = logging.getLogger("wirewall.ctl")

_OPERATIONS = {
    "configure": "/v1/configure",
    "reload": "/v1/reload",
}


class CtlError(RuntimeError):
    pass


def _client(settings: Settings) -> httpx.Client:
    transport = httpx.HTTPTransport(uds=str(settings.socket_path))
    return httpx.Client(transport=transport, base_url="http://wirewalld", timeout=settings.ctl_timeout_seconds)


def call(settings: Settings, operation: str, client: httpx.Client | None = None) -> str:
    """
    Invoke one daemon operation.

    Returns the daemon's error description, empty on success. Raises CtlError when
    the daemon cannot be reached or answers with something unexpected.
    """
    path = _OPERATIONS[operation]
    own_client = client is None
    client = client or _client(settings)
    try:
        resp = client.post(path)
    except httpx.HTTPError as exc:
        raise CtlError(f"cannot reach {settings.service_name} at {settings.socket_path}: {exc}") from exc
    finally:
        if own_client:
            client.close()

    try:
        data = resp.json()
    except ValueError as exc:
        raise CtlError(f"unexpected response ({resp.status_code}): {resp.text[:200]}") from exc
    if not isinstance(data, dict) or "error" not in data:
        raise CtlError(f"unexpected response ({resp.status_code}): {data!r}")

    error = str(data.get("error") or "")
    if resp.status_code >= 400 and not error:
        error = f"daemon answered {resp.status_code}"
    return error


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="wirewallctl", description="Trigger wirewalld operations")
    parser.add_argument("operation", nargs="?", choices=sorted(_OPERATIONS), default="configure")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        error = call(settings, args.operation)
    except CtlError as exc:
        print(f"wirewallctl: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    if error:
        print(f"wirewallctl: {args.operation} failed: {error}", file=sys.stderr)
        raise SystemExit(1)
    logger.debug("operation_ok op=%s", args.operation)


if __name__ == "__main__":
    main()
