"""Local interface enumeration for subnet discovery."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import socket

import psutil

logger = logging.getLogger(__name__)

ROUTE_PROBE_ADDRESS = ("8.8.8.8", 80)


@dataclass(frozen=True, slots=True)
class IPv4Config:
    """One IPv4 address assigned to an interface."""

    address: str
    netmask: str


@dataclass(frozen=True, slots=True)
class NetworkInterface:
    """Read-only snapshot of a local interface and its IPv4 addresses.

    ``friendly_name`` is never filled in by :func:`list_interfaces`; only
    injected interface sources set it, and log lines then prefer it.
    """

    name: str
    ipv4: tuple[IPv4Config, ...] = ()
    friendly_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.name


def _detect_route_local_ip() -> str | None:
    """Return the local IPv4 the OS would use for outbound traffic."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(ROUTE_PROBE_ADDRESS)
            return sock.getsockname()[0]
    except OSError:
        return None


def _read_interfaces() -> list[NetworkInterface]:
    interfaces: list[NetworkInterface] = []
    for name, addrs in psutil.net_if_addrs().items():
        ipv4 = tuple(
            IPv4Config(address=addr.address, netmask=addr.netmask)
            for addr in addrs
            if getattr(addr, "family", None) == socket.AF_INET and addr.address and addr.netmask
        )
        interfaces.append(NetworkInterface(name=name, ipv4=ipv4))
    return interfaces


def default_interface(interfaces: list[NetworkInterface] | None = None) -> NetworkInterface | None:
    """Find the interface carrying the default route, if it can be determined."""
    local_ip = _detect_route_local_ip()
    if not local_ip:
        return None
    for interface in interfaces if interfaces is not None else _read_interfaces():
        if any(config.address == local_ip for config in interface.ipv4):
            return interface
    return None


def merge_interfaces(
    default: NetworkInterface | None,
    interfaces: list[NetworkInterface],
) -> list[NetworkInterface]:
    """Put ``default`` first and drop later entries sharing its (or any earlier) name."""
    merged: list[NetworkInterface] = [default] if default else []
    seen = {interface.name for interface in merged}
    for interface in interfaces:
        if interface.name in seen:
            continue
        seen.add(interface.name)
        merged.append(interface)
    return merged


def list_interfaces() -> list[NetworkInterface]:
    """Snapshot the current interfaces, default-route interface first.

    Enumeration errors are not fatal: the snapshot is simply empty and the
    caller finds nothing for that round.
    """
    try:
        interfaces = _read_interfaces()
    except (OSError, psutil.Error) as exc:
        logger.debug("Interface enumeration failed: %s", exc)
        return []
    return merge_interfaces(default_interface(interfaces), interfaces)
