from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from wirewall.enums import DaemonPhase, Operation
from wirewall.errors import NotReady, WirewallError
from wirewall.models import DaemonState
from wirewall.settings import Settings

from .loader import load_clients, load_config
from .metrics import observe_operation, observe_state
from .reconcile import DnsCapability, TunnelCapability, reconcile

logger = logging.getLogger("wirewall.daemon.state")


class WirewallDaemon:
    """
    Sole owner of the loaded tunnel config and client set.

    `start`, `configure` and `reload` are serialized by one lock, so a
    reconciliation never observes a half-replaced state and two reloads are
    applied one after the other.
    """

    def __init__(self, settings: Settings, tunnel: TunnelCapability, dns: DnsCapability) -> None:
        self.settings = settings
        self.tunnel = tunnel
        self.dns = dns
        self._lock = threading.Lock()
        self._state: DaemonState | None = None
        self._phase = DaemonPhase.UNINITIALIZED

    @property
    def phase(self) -> DaemonPhase:
        return self._phase

    def _load(self) -> DaemonState:
        config = load_config(Path(self.settings.config_file))
        clients = load_clients(Path(self.settings.clients_dir))
        return DaemonState(config=config, clients=clients)

    def _reconcile(self, state: DaemonState) -> list[str]:
        return reconcile(state.config, state.clients, self.tunnel, self.dns, ttl=self.settings.dns_ttl)

    def _run(self, operation: Operation, body) -> None:  # noqa: ANN001
        with self._lock:
            # Duration covers the operation itself, not the wait for the lock.
            started = time.perf_counter()
            try:
                applied = body()
            except WirewallError as exc:
                observe_operation(operation.value, "error", time.perf_counter() - started)
                logger.error("operation_failed op=%s error=%s", operation.value, exc)
                raise
            except Exception:
                observe_operation(operation.value, "error", time.perf_counter() - started)
                logger.exception("operation_crashed op=%s", operation.value)
                raise
            elapsed = time.perf_counter() - started
            observe_operation(operation.value, "ok", elapsed)
            logger.info(
                "operation_done op=%s applied=%s duration_ms=%.2f",
                operation.value,
                ",".join(applied),
                elapsed * 1000,
            )

    def start(self) -> None:
        """Initial load and reconcile. Any failure is fatal to the caller."""

        def _body() -> list[str]:
            state = self._load()
            self._state = state
            observe_state(state)
            applied = self._reconcile(state)
            self._phase = DaemonPhase.READY
            return applied

        self._run(Operation.START, _body)

    def configure(self) -> None:
        """Re-push the held desired state without touching the filesystem."""

        def _body() -> list[str]:
            if self._phase is not DaemonPhase.READY or self._state is None:
                raise NotReady("daemon has not completed its initial load")
            return self._reconcile(self._state)

        self._run(Operation.CONFIGURE, _body)

    def reload(self) -> None:
        """Re-read config and clients, swap them in only if both load, then reconcile."""

        def _body() -> list[str]:
            if self._phase is not DaemonPhase.READY:
                raise NotReady("daemon has not completed its initial load")
            state = self._load()
            self._state = state
            observe_state(state)
            logger.info(
                "state_replaced interface=%s zone=%s clients=%s",
                state.config.interface,
                state.config.zone,
                len(state.clients),
            )
            return self._reconcile(state)

        self._run(Operation.RELOAD, _body)

    def snapshot(self) -> DaemonState | None:
        with self._lock:
            return self._state
