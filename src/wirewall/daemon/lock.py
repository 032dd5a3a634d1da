from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path

from wirewall.errors import AlreadyRunning

logger = logging.getLogger("wirewall.daemon.lock")


class ServiceNameLock:
    """
    Exclusive ownership of the service identity on this host.

    Held through a non-blocking `flock` on `<run_dir>/<service_name>.lock`. The
    kernel drops the lock when the process exits, so a crashed daemon never
    leaves the name stuck.
    """

    def __init__(self, service_name: str, path: Path) -> None:
        self.service_name = service_name
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise AlreadyRunning(self.service_name) from exc
        except OSError:
            os.close(fd)
            raise
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        logger.info("service_name_acquired name=%s lock=%s", self.service_name, self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> "ServiceNameLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.release()
