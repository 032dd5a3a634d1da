from __future__ import annotations

import base64
import binascii
import ipaddress
from dataclasses import dataclass

KEY_LEN = 32


def decode_key(value: str) -> bytes:
    """
    Decode a WireGuard key from its standard base64 form (44 chars, 32 bytes).

    Raises ValueError on malformed input.
    """
    raw = str(value or "").strip()
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"not valid base64: {exc}") from exc
    if len(key) != KEY_LEN:
        raise ValueError(f"expected {KEY_LEN} bytes, got {len(key)}")
    return key


def encode_key(key: bytes) -> str:
    return base64.b64encode(key).decode("ascii")


@dataclass(frozen=True)
class TunnelConfig:
    interface: str
    zone: str | None = None
    reverse_zone: str | None = None


@dataclass(frozen=True)
class ClientRecord:
    name: str
    address: ipaddress.IPv4Address
    public_key: bytes
    preshared_key: bytes | None = None

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network((self.address, 32))

    @property
    def reverse_name(self) -> str:
        # "10.0.0.2" -> "2.0.0.10.in-addr.arpa."
        return self.address.reverse_pointer + "."

    def fqdn(self, zone: str) -> str:
        return f"{self.name}.{zone}"

    def __repr__(self) -> str:
        # Keep key material out of logs and tracebacks.
        return (
            f"ClientRecord(name={self.name!r}, address={str(self.address)!r}, "
            f"public_key={encode_key(self.public_key)!r}, preshared_key={'set' if self.preshared_key else None})"
        )


@dataclass(frozen=True)
class DaemonState:
    config: TunnelConfig
    clients: tuple[ClientRecord, ...]
