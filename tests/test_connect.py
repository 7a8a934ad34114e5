"""Real-socket checks for the bound connector against a loopback listener."""

import asyncio

import pytest
import pytest_asyncio

from station.scanner import Candidate, ScanBuilder, ScanCount, ScanStats, open_bound_connection

from .conftest import make_interface


@pytest_asyncio.fixture
async def listener():
    received = asyncio.Queue()

    async def handle(reader, writer):
        received.put_nowait(await reader.read(1))
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port, received
    server.close()
    await server.wait_closed()


async def _closed_port() -> int:
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


@pytest.mark.asyncio
async def test_bound_connection_reaches_listener(listener):
    port, received = listener
    candidate = Candidate(host="127.0.0.1", port=port, bind_address="127.0.0.1")

    reader, writer = await asyncio.wait_for(open_bound_connection(candidate), timeout=2)
    assert writer.get_extra_info("peername")[:2] == ("127.0.0.1", port)
    assert writer.get_extra_info("sockname")[0] == "127.0.0.1"

    writer.write(b"\x03")
    await writer.drain()
    assert await asyncio.wait_for(received.get(), timeout=2) == b"\x03"
    writer.close()


@pytest.mark.asyncio
async def test_bound_connection_refused_raises_oserror():
    port = await _closed_port()
    candidate = Candidate(host="127.0.0.1", port=port, bind_address="127.0.0.1")

    with pytest.raises(OSError):
        await asyncio.wait_for(open_bound_connection(candidate), timeout=2)


@pytest.mark.asyncio
async def test_bind_failure_raises_oserror():
    candidate = Candidate(host="127.0.0.1", port=9, bind_address="203.0.113.200")

    with pytest.raises(OSError):
        await asyncio.wait_for(open_bound_connection(candidate), timeout=2)


@pytest.mark.asyncio
async def test_engine_with_default_connector_skips_loopback():
    stats = ScanStats()
    handle = (
        ScanBuilder()
        .add_port(9)
        .scan_count(ScanCount.limited(1))
        .interface_source(lambda: [make_interface("lo", ("127.0.0.1", "255.0.0.0"))])
        .observer(stats)
        .dispatch()
    )

    assert [connection async for connection in handle] == []
    assert stats.total_attempts == 0


@pytest.mark.asyncio
async def test_engine_delivers_a_working_stream(listener):
    port, received = listener

    async def redirect(candidate):
        if candidate.endpoint != ("10.0.0.7", 9000):
            raise ConnectionRefusedError(candidate.host)
        return await open_bound_connection(Candidate(host="127.0.0.1", port=port, bind_address="127.0.0.1"))

    handle = (
        ScanBuilder()
        .add_port(9000)
        .scan_count(ScanCount.limited(1))
        .interface_source(lambda: [make_interface("eth0", ("10.0.0.5", "255.255.255.0"))])
        .connector(redirect)
        .dispatch()
    )

    connection = await asyncio.wait_for(handle.recv(), timeout=2)
    assert connection.peer == ("127.0.0.1", port)
    assert connection.interface == "eth0"

    connection.writer.write(b"\x00")
    await connection.writer.drain()
    assert await asyncio.wait_for(received.get(), timeout=2) == b"\x00"
    connection.close()
    await connection.wait_closed()
    await asyncio.wait_for(handle.join(), timeout=2)
