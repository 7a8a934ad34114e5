import asyncio

import pytest

from station import main as cli
from station.config import StationSettings
from station.export.journal import read_discovery_records
from station.scanner import EstablishedConnection, ScanBuilder, ScanCount

from .conftest import FakeNetwork, FakeWriter, make_interface


def _connection() -> tuple[EstablishedConnection, FakeWriter]:
    writer = FakeWriter(peer=("10.0.0.7", 1000), local=("10.0.0.5", 40000))
    return EstablishedConnection(reader=None, writer=writer, peer=("10.0.0.7", 1000)), writer


def _lines(*lines: str) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line.encode())
    reader.feed_eof()
    return reader


def test_cli_flags_override_settings(monkeypatch):
    monkeypatch.delenv("STATION_PORTS", raising=False)
    args = cli.build_parser().parse_args(["-p", "9000", "-p", "9001", "--rounds", "1", "--wait", "0", "scan", "--first"])

    settings = cli.load_settings(args)
    assert settings.ports == [9000, 9001]
    assert settings.rounds == 1
    assert settings.wait_time == 0
    assert args.first


@pytest.mark.asyncio
async def test_relay_writes_opcodes_and_skips_unknown_names(capsys):
    connection, writer = _connection()

    code = await cli.relay_commands(connection, _lines("up\n", "\n", "zoom\n", "TILT_OFF\n", "3\n"))

    assert code == 0
    assert bytes(writer.written) == b"\x00\x02\x03"
    assert writer.closed
    assert "unknown command" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_relay_stops_when_peer_goes_away():
    connection, writer = _connection()
    writer.closed = True

    assert await cli.relay_commands(connection, _lines("up\n", "down\n")) == 1


@pytest.mark.asyncio
async def test_run_scan_reports_and_journals_peers(monkeypatch, tmp_path, capsys):
    network = FakeNetwork(live=[("10.0.0.7", 1000)])

    def to_builder(self):
        return (
            ScanBuilder()
            .add_ports(self.ports)
            .scan_count(ScanCount.limited(1))
            .interface_source(lambda: [make_interface("eth0", ("10.0.0.5", "255.255.255.0"))])
            .connector(network.connect)
        )

    monkeypatch.setattr(StationSettings, "to_builder", to_builder)
    settings = StationSettings(ports=[1000], journal_path=tmp_path / "peers.jsonl")

    assert await cli.run_scan(settings) == 0
    assert "Found peer 10.0.0.7:1000 via eth0" in capsys.readouterr().out
    assert network.writers[0].closed
    (record,) = read_discovery_records(tmp_path / "peers.jsonl")
    assert record["peer_host"] == "10.0.0.7"
    assert record["peer_port"] == 1000


@pytest.mark.asyncio
async def test_run_scan_without_peers_returns_failure(monkeypatch, capsys):
    network = FakeNetwork()

    def to_builder(self):
        return (
            ScanBuilder()
            .add_port(1000)
            .scan_count(ScanCount.limited(1))
            .interface_source(lambda: [make_interface("eth0", ("10.0.0.5", "255.255.255.248"))])
            .connector(network.connect)
        )

    monkeypatch.setattr(StationSettings, "to_builder", to_builder)

    assert await cli.run_scan(StationSettings(ports=[1000])) == 1
    assert "No peers found" in capsys.readouterr().out
