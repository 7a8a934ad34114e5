"""IP helpers: subnet derivation and candidate expansion."""

from __future__ import annotations

from dataclasses import dataclass
import ipaddress
from itertools import islice
from typing import Iterable, Iterator, Sequence

from .interfaces import NetworkInterface

Endpoint = tuple[str, int]


@dataclass(frozen=True, slots=True)
class Candidate:
    """A host/port pair to dial, plus the local address it is dialed from."""

    host: str
    port: int
    bind_address: str
    interface: str = ""

    @property
    def endpoint(self) -> Endpoint:
        return (self.host, self.port)


def to_ip_address(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Convert a host value to an ``ipaddress`` object when possible."""
    if not value:
        return None

    host = value.strip().lower()
    if host == "localhost":
        return ipaddress.ip_address("127.0.0.1")

    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def is_loopback_or_localhost(value: str) -> bool:
    """Return ``True`` when ``value`` points to loopback localhost space."""
    ip_obj = to_ip_address(value)
    return bool(ip_obj and ip_obj.is_loopback)


def normalize_endpoint(value: Endpoint | str) -> Endpoint:
    """Accept ``(host, port)`` or ``"host:port"`` and return a canonical tuple."""
    if isinstance(value, str):
        host, port = value.rsplit(":", 1)
    else:
        host, port = value
    ip_obj = to_ip_address(str(host))
    return (str(ip_obj) if ip_obj else str(host).strip(), int(port))


def interface_subnets(interface: NetworkInterface) -> list[ipaddress.IPv4Interface]:
    """Derive the non-loopback IPv4 subnets an interface sits on."""
    subnets: list[ipaddress.IPv4Interface] = []
    for config in interface.ipv4:
        if is_loopback_or_localhost(config.address):
            continue
        try:
            subnet = ipaddress.IPv4Interface(f"{config.address}/{config.netmask}")
        except ValueError:
            continue
        subnets.append(subnet)
    return subnets


def subnet_hosts(subnet: ipaddress.IPv4Interface, max_hosts: int | None = None) -> Iterator[ipaddress.IPv4Address]:
    hosts = subnet.network.hosts()
    return islice(hosts, max_hosts) if max_hosts is not None else iter(hosts)


def expand_candidates(
    interfaces: Iterable[NetworkInterface],
    ports: Sequence[int],
    *,
    max_hosts: int | None = None,
) -> Iterator[Candidate]:
    """Yield every (host, port) reachable from ``interfaces``.

    An endpoint is produced once per call even when several interfaces share
    a subnet; the earliest interface wins.
    """
    seen: set[Endpoint] = set()
    for interface in interfaces:
        for subnet in interface_subnets(interface):
            bind_address = str(subnet.ip)
            for host in subnet_hosts(subnet, max_hosts):
                for port in ports:
                    endpoint = (str(host), int(port))
                    if endpoint in seen:
                        continue
                    seen.add(endpoint)
                    yield Candidate(host=endpoint[0], port=endpoint[1], bind_address=bind_address, interface=interface.name)
