from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from wirewall.errors import DNSApplyError, TunnelApplyError
from wirewall.models import ClientRecord, TunnelConfig, encode_key

logger = logging.getLogger("wirewall.daemon.reconcile")

DEFAULT_TTL = 3600


@dataclass(frozen=True)
class PeerSpec:
    public_key: bytes
    preshared_key: bytes | None
    allowed_ips: tuple[ipaddress.IPv4Network, ...]
    replace_allowed_ips: bool = True


@dataclass(frozen=True)
class PeerSetRequest:
    """Complete desired peer set for one device. Peers not listed are removed."""

    interface: str
    peers: tuple[PeerSpec, ...]
    replace_peers: bool = True

    def render(self) -> str:
        # Peer-only wg(8) config; `wg syncconf` keeps the interface keys and port.
        blocks: list[str] = []
        for peer in self.peers:
            lines = ["[Peer]", f"PublicKey = {encode_key(peer.public_key)}"]
            if peer.preshared_key:
                lines.append(f"PresharedKey = {encode_key(peer.preshared_key)}")
            lines.append(f"AllowedIPs = {', '.join(str(net) for net in peer.allowed_ips)}")
            blocks.append("\n".join(lines) + "\n")
        return "\n".join(blocks)


@dataclass(frozen=True)
class DnsRecord:
    name: str
    ttl: int
    rtype: str
    data: str


@dataclass(frozen=True)
class DnsBatch:
    """One atomic dynamic update against a single zone."""

    zone: str
    records: tuple[DnsRecord, ...]

    def instructions(self) -> list[str]:
        out = [f"zone {self.zone}"]
        for record in self.records:
            out.append(f"update add {record.name} {record.ttl} {record.rtype} {record.data}")
        out.append("send")
        return out

    def render(self) -> str:
        return "\n".join(self.instructions()) + "\n"


class TunnelCapability(Protocol):
    def apply(self, request: PeerSetRequest) -> None: ...


class DnsCapability(Protocol):
    def submit(self, batch: DnsBatch) -> None: ...


def build_peer_request(config: TunnelConfig, clients: Sequence[ClientRecord]) -> PeerSetRequest:
    peers = tuple(
        PeerSpec(
            public_key=client.public_key,
            preshared_key=client.preshared_key,
            allowed_ips=(client.network,),
            replace_allowed_ips=True,
        )
        for client in clients
    )
    return PeerSetRequest(interface=config.interface, peers=peers, replace_peers=True)


def build_dns_batch(zone: str, clients: Sequence[ClientRecord], *, ttl: int = DEFAULT_TTL) -> DnsBatch:
    records = tuple(
        DnsRecord(name=client.fqdn(zone), ttl=ttl, rtype="A", data=str(client.address)) for client in clients
    )
    return DnsBatch(zone=zone, records=records)


def _in_zone(name: str, zone: str) -> bool:
    name_l = name.rstrip(".").lower()
    zone_l = zone.rstrip(".").lower()
    return name_l == zone_l or name_l.endswith("." + zone_l)


def build_reverse_batch(
    zone: str,
    reverse_zone: str,
    clients: Sequence[ClientRecord],
    *,
    ttl: int = DEFAULT_TTL,
) -> DnsBatch:
    records: list[DnsRecord] = []
    for client in clients:
        if not _in_zone(client.reverse_name, reverse_zone):
            logger.warning(
                "reverse_skip client=%s address=%s reverse_zone=%s",
                client.name,
                client.address,
                reverse_zone,
            )
            continue
        fqdn = client.fqdn(zone)
        if not fqdn.endswith("."):
            fqdn += "."
        records.append(DnsRecord(name=client.reverse_name, ttl=ttl, rtype="PTR", data=fqdn))
    return DnsBatch(zone=reverse_zone, records=tuple(records))


def reconcile(
    config: TunnelConfig,
    clients: Sequence[ClientRecord],
    tunnel: TunnelCapability,
    dns: DnsCapability,
    *,
    ttl: int = DEFAULT_TTL,
) -> list[str]:
    """
    Push the complete desired state for `config` and `clients`.

    Order is fixed: tunnel peers first, then the forward zone, then the reverse
    zone. The first failure stops the run; steps already applied stay applied.
    Returns the names of the applied steps.
    """
    applied: list[str] = []

    request = build_peer_request(config, clients)
    try:
        tunnel.apply(request)
    except TunnelApplyError:
        raise
    except Exception as exc:
        raise TunnelApplyError(config.interface, str(exc)) from exc
    applied.append("tunnel")
    logger.info("tunnel_applied interface=%s peers=%s", config.interface, len(request.peers))

    if config.zone is None:
        return applied

    batch = build_dns_batch(config.zone, clients, ttl=ttl)
    _submit(dns, batch)
    applied.append("dns")
    logger.info("dns_applied zone=%s records=%s", batch.zone, len(batch.records))

    if config.reverse_zone is not None:
        reverse = build_reverse_batch(config.zone, config.reverse_zone, clients, ttl=ttl)
        _submit(dns, reverse)
        applied.append("reverse_dns")
        logger.info("reverse_dns_applied zone=%s records=%s", reverse.zone, len(reverse.records))

    return applied


def _submit(dns: DnsCapability, batch: DnsBatch) -> None:
    try:
        dns.submit(batch)
    except DNSApplyError:
        raise
    except Exception as exc:
        raise DNSApplyError(batch.zone, str(exc)) from exc
