"""Shared fakes: an in-memory network and interface snapshots."""

from __future__ import annotations

import asyncio
from typing import Iterable

import pytest

from station.scanner import Candidate, IPv4Config, NetworkInterface


class FakeWriter:
    def __init__(self, peer: tuple[str, int], local: tuple[str, int]) -> None:
        self.peer = peer
        self.local = local
        self.written = bytearray()
        self.closed = False

    def get_extra_info(self, name: str, default: object = None) -> object:
        return {"peername": self.peer, "sockname": self.local}.get(name, default)

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionResetError("writer closed")
        self.written.extend(data)

    async def drain(self) -> None:
        if self.closed:
            raise ConnectionResetError("writer closed")

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed

    async def wait_closed(self) -> None:
        return None


class FakeNetwork:
    """Connector double: ``live`` endpoints accept, everything else refuses."""

    def __init__(
        self,
        live: Iterable[tuple[str, int]] = (),
        *,
        delay: float = 0.0,
        delays: dict[tuple[str, int], float] | None = None,
        hang: Iterable[tuple[str, int]] = (),
    ) -> None:
        self.live = set(live)
        self.delay = delay
        self.delays = dict(delays or {})
        self.hang = set(hang)
        self.calls: list[Candidate] = []
        self.writers: list[FakeWriter] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def attempts_for(self, endpoint: tuple[str, int]) -> int:
        return sum(1 for candidate in self.calls if candidate.endpoint == endpoint)

    async def connect(self, candidate: Candidate):
        self.calls.append(candidate)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if candidate.endpoint in self.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delays.get(candidate.endpoint, self.delay))
            if candidate.endpoint not in self.live:
                raise ConnectionRefusedError(f"refused {candidate.host}:{candidate.port}")
            writer = FakeWriter(peer=candidate.endpoint, local=(candidate.bind_address, 40000 + len(self.writers)))
            self.writers.append(writer)
            return asyncio.StreamReader(), writer
        finally:
            self.in_flight -= 1


def make_interface(name: str, *addresses: tuple[str, str]) -> NetworkInterface:
    return NetworkInterface(name=name, ipv4=tuple(IPv4Config(address=a, netmask=m) for a, m in addresses))


@pytest.fixture
def lan_interface() -> NetworkInterface:
    return make_interface("eth0", ("10.0.0.5", "255.255.255.0"))


@pytest.fixture
def small_interface() -> NetworkInterface:
    # /29: six usable hosts, 10.0.0.1 - 10.0.0.6
    return make_interface("eth0", ("10.0.0.5", "255.255.255.248"))
