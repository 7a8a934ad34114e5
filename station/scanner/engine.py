"""Round-based LAN connect scanner.

A scan repeatedly snapshots the local interfaces, expands every subnet into
host/port candidates and dials all of them concurrently under a fixed permit
pool. Each connection that succeeds is handed to the caller through a
:class:`ScanHandle` as soon as it completes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import random
import socket
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Sequence

from .completion import RoundBarrier
from .errors import ScanConfigError, ScanExhausted
from .exclusion import ExclusionSet, PeerExclusion
from .interfaces import NetworkInterface, list_interfaces
from .ip_utils import Candidate, Endpoint, expand_candidates, interface_subnets
from .stats import ScanObserver

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL_ATTEMPTS = 1000
DEFAULT_WAIT_TIME = 5.0

StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]
Connector = Callable[[Candidate], Awaitable[StreamPair]]
InterfaceSource = Callable[[], Iterable[NetworkInterface]]


@dataclass(frozen=True, slots=True)
class ScanCount:
    """Scan budget: ``limit=None`` runs forever, otherwise that many rounds."""

    limit: int | None = 1

    @classmethod
    def infinite(cls) -> ScanCount:
        return cls(limit=None)

    @classmethod
    def limited(cls, rounds: int) -> ScanCount:
        return cls(limit=rounds)

    @property
    def is_infinite(self) -> bool:
        return self.limit is None


@dataclass(slots=True)
class EstablishedConnection:
    """A live TCP stream to a discovered peer, owned by whoever received it."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    peer: Endpoint
    local: Endpoint | None = None
    interface: str = ""

    def close(self) -> None:
        self.writer.close()

    async def wait_closed(self) -> None:
        try:
            await self.writer.wait_closed()
        except OSError:
            pass


async def open_bound_connection(candidate: Candidate) -> StreamPair:
    """Connect to ``candidate`` from its interface address on an ephemeral port."""
    loop = asyncio.get_running_loop()
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setblocking(False)
        sock.bind((candidate.bind_address, 0))
        await loop.sock_connect(sock, candidate.endpoint)
        return await asyncio.open_connection(sock=sock)
    except BaseException:
        sock.close()
        raise


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Immutable settings for one scan run."""

    ports: tuple[int, ...] = ()
    scan_count: ScanCount = field(default_factory=ScanCount)
    exclusion: PeerExclusion = field(default_factory=PeerExclusion)
    parallel_attempts: int = DEFAULT_PARALLEL_ATTEMPTS
    wait_time: float = DEFAULT_WAIT_TIME
    connect_timeout: float | None = None
    max_hosts: int | None = None
    queue_size: int = 0
    observer: ScanObserver | None = None
    interface_source: InterfaceSource = list_interfaces
    connector: Connector = open_bound_connection

    def validate(self) -> None:
        if not self.ports:
            raise ScanConfigError("at least one target port is required")
        invalid = [port for port in self.ports if not 0 < port <= 65535]
        if invalid:
            raise ScanConfigError(f"invalid target port(s): {', '.join(map(str, invalid))}")
        if self.parallel_attempts < 1:
            raise ScanConfigError("parallel_attempts must be at least 1")
        if self.wait_time < 0:
            raise ScanConfigError("wait_time cannot be negative")
        if self.scan_count.limit is not None and self.scan_count.limit < 0:
            raise ScanConfigError("a limited scan count cannot be negative")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ScanConfigError("connect_timeout must be positive")
        if self.max_hosts is not None and self.max_hosts < 1:
            raise ScanConfigError("max_hosts must be at least 1")
        if self.queue_size < 0:
            raise ScanConfigError("queue_size cannot be negative")


_END = object()


class ScanHandle:
    """Receive side of a running scan.

    Connections arrive in the order they complete. Closing the handle tells
    the scan its consumer is gone: undelivered connections are closed, new
    attempts are skipped and the background task exits at the next round
    boundary.
    """

    def __init__(self, queue_size: int = 0, scan_id: int = 0) -> None:
        self.scan_id = scan_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._slots = asyncio.Semaphore(queue_size) if queue_size else None
        self._closed = asyncio.Event()
        self._ended = False
        self._task: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def recv(self) -> EstablishedConnection:
        """Wait for the next connection; raises :class:`ScanExhausted` at end of scan."""
        if self.closed or self._ended:
            raise ScanExhausted("scan handle is closed" if self.closed else "scan finished")
        item = await self._queue.get()
        if item is _END:
            self._ended = True
            raise ScanExhausted("scan finished")
        if self._slots is not None:
            self._slots.release()
        return item

    def __aiter__(self) -> AsyncIterator[EstablishedConnection]:
        return self

    async def __anext__(self) -> EstablishedConnection:
        try:
            return await self.recv()
        except ScanExhausted:
            raise StopAsyncIteration from None

    def close(self) -> None:
        """Disconnect the consumer and drop every connection not yet received."""
        if self.closed:
            return
        self._closed.set()
        self._discard_pending()

    async def aclose(self, *, cancel: bool = False) -> None:
        """Close and wait for the background scan to stop.

        Without ``cancel`` the scan stops at its next round boundary, which
        may take as long as the slowest outstanding connect attempt.
        """
        self.close()
        if self._task is None:
            return
        if cancel:
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            if not cancel:
                raise

    async def join(self) -> None:
        """Wait for the background scan to finish on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def __aenter__(self) -> ScanHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose(cancel=True)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _deliver(self, connection: EstablishedConnection) -> bool:
        if self.closed:
            connection.close()
            return False
        if self._slots is not None:
            try:
                await self._slots.acquire()
            except asyncio.CancelledError:
                connection.close()
                raise
            if self.closed:
                # wakes the next waiting delivery
                self._slots.release()
                connection.close()
                return False
        self._queue.put_nowait(connection)
        return True

    def _finish(self) -> None:
        self._queue.put_nowait(_END)

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _END:
                self._ended = True
                continue
            item.close()
            if self._slots is not None:
                self._slots.release()


class ScanEngine:
    """Drives scan rounds until the budget runs out or the consumer leaves."""

    def __init__(self, config: ScanConfig, handle: ScanHandle) -> None:
        self.config = config
        self.handle = handle
        self.observer = config.observer or ScanObserver()
        self.exclusions: ExclusionSet = config.exclusion.build()

    @property
    def scan_id(self) -> int:
        return self.handle.scan_id

    async def run(self) -> None:
        remaining = self.config.scan_count.limit
        round_number = 0
        try:
            while remaining is None or remaining > 0:
                round_number += 1
                if remaining is None:
                    logger.info("Scan %04x running round %d", self.scan_id, round_number)
                else:
                    logger.info("Scan %04x, %d remaining scans", self.scan_id, remaining)
                    remaining -= 1

                await self.run_round(round_number)
                logger.info("Scan %04x round %d completed", self.scan_id, round_number)

                if self.handle.closed:
                    logger.debug("Scan %04x consumer disconnected, stopping", self.scan_id)
                    return
                if remaining == 0:
                    break
                if await self._pace():
                    logger.debug("Scan %04x consumer disconnected while waiting, stopping", self.scan_id)
                    return
        finally:
            self.handle._finish()

    async def _pace(self) -> bool:
        """Sleep the round delay; returns ``True`` if the consumer left meanwhile."""
        try:
            await asyncio.wait_for(self.handle.wait_closed(), timeout=self.config.wait_time)
        except asyncio.TimeoutError:
            return False
        return True

    def snapshot_interfaces(self) -> list[NetworkInterface]:
        try:
            interfaces = list(self.config.interface_source())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Scan %04x could not read interfaces: %s", self.scan_id, exc)
            return []
        for interface in interfaces:
            for subnet in interface_subnets(interface):
                logger.debug(
                    "Scan %04x using interface %s with address %s",
                    self.scan_id,
                    interface.display_name,
                    subnet.with_prefixlen,
                )
        return interfaces

    def round_candidates(self, interfaces: Sequence[NetworkInterface]) -> list[Candidate]:
        return [
            candidate
            for candidate in expand_candidates(interfaces, self.config.ports, max_hosts=self.config.max_hosts)
            if candidate.endpoint not in self.exclusions
        ]

    async def run_round(self, round_number: int) -> None:
        candidates = self.round_candidates(self.snapshot_interfaces())
        self.observer.on_round_start(round_number, len(candidates))

        permits = asyncio.Semaphore(self.config.parallel_attempts)
        barrier = RoundBarrier()
        tasks: set[asyncio.Task[None]] = set()

        for candidate in candidates:
            task = asyncio.create_task(self._attempt(candidate, permits))
            barrier.track(task)
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        logger.debug("Scan %04x started %d connect tasks", self.scan_id, len(candidates))
        barrier.seal()
        try:
            await barrier.wait()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        self.observer.on_round_complete(round_number)

    async def _attempt(self, candidate: Candidate, permits: asyncio.Semaphore) -> None:
        async with permits:
            if self.handle.closed:
                return
            self.observer.on_attempt(candidate)
            try:
                reader, writer = await self._connect(candidate)
            except (OSError, asyncio.TimeoutError) as exc:
                logger.debug("Scan %04x connect to %s:%d failed: %s", self.scan_id, candidate.host, candidate.port, exc)
                self.observer.on_failed(candidate, exc)
                return
            finally:
                self.observer.on_attempt_done(candidate)

            peer = _endpoint(writer.get_extra_info("peername")) or candidate.endpoint
            connection = EstablishedConnection(
                reader=reader,
                writer=writer,
                peer=peer,
                local=_endpoint(writer.get_extra_info("sockname")),
                interface=candidate.interface,
            )
            logger.info("Scan %04x found peer at %s:%d", self.scan_id, peer[0], peer[1])
            self.observer.on_connected(candidate)
            if await self.handle._deliver(connection):
                self.exclusions.record_connected(candidate.endpoint)

    async def _connect(self, candidate: Candidate) -> StreamPair:
        if self.config.connect_timeout is None:
            return await self.config.connector(candidate)
        return await asyncio.wait_for(self.config.connector(candidate), timeout=self.config.connect_timeout)


def _endpoint(address: object | None) -> Endpoint | None:
    if isinstance(address, tuple) and len(address) >= 2:
        return str(address[0]), int(address[1])
    return None


class ScanBuilder:
    """Fluent configuration for a scan; :meth:`dispatch` starts it."""

    def __init__(self) -> None:
        self._ports: list[int] = []
        self._scan_count = ScanCount()
        self._exclusion = PeerExclusion()
        self._parallel_attempts = DEFAULT_PARALLEL_ATTEMPTS
        self._wait_time = DEFAULT_WAIT_TIME
        self._connect_timeout: float | None = None
        self._max_hosts: int | None = None
        self._queue_size = 0
        self._observer: ScanObserver | None = None
        self._interface_source: InterfaceSource = list_interfaces
        self._connector: Connector = open_bound_connection

    def scan_count(self, scan_count: ScanCount) -> ScanBuilder:
        self._scan_count = scan_count
        return self

    def excluded_peers(self, peers: PeerExclusion) -> ScanBuilder:
        self._exclusion = peers
        return self

    def parallel_attempts(self, parallel_attempts: int) -> ScanBuilder:
        self._parallel_attempts = int(parallel_attempts)
        return self

    def add_port(self, port: int) -> ScanBuilder:
        self._ports.append(int(port))
        return self

    def add_ports(self, ports: Iterable[int]) -> ScanBuilder:
        for port in ports:
            self.add_port(port)
        return self

    def wait_time(self, seconds: float) -> ScanBuilder:
        self._wait_time = float(seconds)
        return self

    def connect_timeout(self, seconds: float | None) -> ScanBuilder:
        self._connect_timeout = None if seconds is None else float(seconds)
        return self

    def max_hosts(self, max_hosts: int | None) -> ScanBuilder:
        self._max_hosts = max_hosts
        return self

    def queue_size(self, size: int) -> ScanBuilder:
        self._queue_size = int(size)
        return self

    def observer(self, observer: ScanObserver | None) -> ScanBuilder:
        self._observer = observer
        return self

    def interface_source(self, source: InterfaceSource) -> ScanBuilder:
        self._interface_source = source
        return self

    def connector(self, connector: Connector) -> ScanBuilder:
        self._connector = connector
        return self

    def build(self) -> ScanConfig:
        config = ScanConfig(
            ports=tuple(self._ports),
            scan_count=self._scan_count,
            exclusion=self._exclusion,
            parallel_attempts=self._parallel_attempts,
            wait_time=self._wait_time,
            connect_timeout=self._connect_timeout,
            max_hosts=self._max_hosts,
            queue_size=self._queue_size,
            observer=self._observer,
            interface_source=self._interface_source,
            connector=self._connector,
        )
        config.validate()
        return config

    def dispatch(self) -> ScanHandle:
        """Start scanning in the background and return the result handle.

        Must be called from inside a running event loop.
        """
        return start_scan(self.build())


def start_scan(config: ScanConfig) -> ScanHandle:
    config.validate()
    asyncio.get_running_loop()
    handle = ScanHandle(queue_size=config.queue_size, scan_id=random.getrandbits(16))
    engine = ScanEngine(config, handle)
    handle._task = asyncio.create_task(engine.run(), name=f"station-scan-{handle.scan_id:04x}")
    return handle
