from __future__ import annotations

from pathlib import Path


class WirewallError(RuntimeError):
    pass


class ConfigError(WirewallError):
    """Raised when the tunnel config or a client file cannot be turned into records."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"read {self.path}: {reason}")


class ConfigIOError(ConfigError):
    pass


class ConfigParseError(ConfigError):
    pass


class MissingField(ConfigError):
    def __init__(self, path: Path | str, field: str) -> None:
        self.field = field
        super().__init__(path, f"missing {field}")


class InvalidField(ConfigError):
    def __init__(self, path: Path | str, field: str, reason: str) -> None:
        self.field = field
        super().__init__(path, f"invalid {field}: {reason}")


class DuplicateClient(ConfigError):
    def __init__(self, path: Path | str, field: str, value: str, other: Path | str) -> None:
        self.field = field
        self.value = value
        self.other = Path(other)
        super().__init__(path, f"duplicate {field} {value!r} (already used by {self.other.name})")


class ReconcileError(WirewallError):
    pass


class TunnelApplyError(ReconcileError):
    def __init__(self, interface: str, cause: str) -> None:
        self.interface = interface
        super().__init__(f"configure {interface}: {cause}")


class DNSApplyError(ReconcileError):
    def __init__(self, zone: str, cause: str) -> None:
        self.zone = zone
        super().__init__(f"update zone {zone}: {cause}")


class ServiceError(WirewallError):
    pass


class AlreadyRunning(ServiceError):
    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"an instance of wirewalld already owns {service_name}")


class NotReady(ServiceError):
    pass
