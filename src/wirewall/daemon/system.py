from __future__ import annotations

import logging
import shlex
import subprocess

from wirewall.errors import DNSApplyError, TunnelApplyError
from wirewall.settings import Settings

from .reconcile import DnsBatch, PeerSetRequest

logger = logging.getLogger("wirewall.daemon.system")

_MAX_DETAILS = 400


def run_command(
    args: list[str],
    dry_run: bool,
    *,
    input_text: str | None = None,
    timeout: float | None = None,
) -> tuple[bool, str]:
    cmd = shlex.join(args)
    if dry_run:
        logger.info("dry_run cmd=%s stdin_bytes=%s", cmd, len(input_text or ""))
        return True, f"dry-run: {cmd}"
    try:
        proc = subprocess.run(
            args,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout or None,
        )
    except FileNotFoundError:
        return False, f"{args[0]} not found"
    except subprocess.TimeoutExpired:
        return False, f"timed out after {timeout}s"
    output = (proc.stdout + "\n" + proc.stderr).strip()
    return proc.returncode == 0, output


def _details(out: str) -> str:
    details = (out or "").strip() or "no output"
    if len(details) > _MAX_DETAILS:
        details = details[:_MAX_DETAILS].rstrip() + "..."
    return details


class WgTunnel:
    """Applies peer sets with `wg syncconf`, which removes peers absent from the input."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def apply(self, request: PeerSetRequest) -> None:
        args = [self.settings.wg_bin, "syncconf", request.interface, "/dev/stdin"]
        ok, out = run_command(
            args,
            self.settings.dry_run,
            input_text=request.render(),
            timeout=self.settings.command_timeout_seconds,
        )
        if not ok:
            raise TunnelApplyError(request.interface, _details(out))


class NsupdateDns:
    """Submits each batch as one `nsupdate` transaction."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def submit(self, batch: DnsBatch) -> None:
        args = [self.settings.nsupdate_bin, *self.settings.nsupdate_args]
        ok, out = run_command(
            args,
            self.settings.dry_run,
            input_text=batch.render(),
            timeout=self.settings.command_timeout_seconds,
        )
        if not ok:
            raise DNSApplyError(batch.zone, _details(out))
