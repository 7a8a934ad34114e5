"""Command-line entry point: find peers on the LAN and relay commands to them."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from station.commands import Command, parse_command, send_command
from station.config import StationSettings
from station.export.journal import append_discovery_record, connection_record
from station.scanner import EstablishedConnection, ScanExhausted, ScanHandle

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="station", description="Discover LAN peers by TCP connect scanning.")
    parser.add_argument("-p", "--port", dest="ports", type=int, action="append", help="target port (repeatable)")
    parser.add_argument("--rounds", type=int, help="scan rounds to run, 0 for unlimited")
    parser.add_argument("--parallel", dest="parallel_attempts", type=int, help="concurrent connect attempts")
    parser.add_argument("--wait", dest="wait_time", type=float, help="seconds between rounds")
    parser.add_argument("--timeout", dest="connect_timeout", type=float, help="per-attempt connect timeout")
    parser.add_argument("--max-hosts", type=int, help="cap on hosts probed per subnet")
    parser.add_argument("--exclusion", choices=["never", "pre_excluded", "connect_once"])
    parser.add_argument("--exclude", dest="excluded_peers", action="append", metavar="HOST:PORT")
    parser.add_argument("--journal", dest="journal_path", help="append found peers to this JSON-lines file")
    parser.add_argument("--log-level", help="logging level (DEBUG, INFO, ...)")

    subparsers = parser.add_subparsers(dest="command")
    scan = subparsers.add_parser("scan", help="report every peer found")
    scan.add_argument("--first", action="store_true", help="stop after the first peer")
    subparsers.add_parser("relay", help="connect to the first peer and relay commands read from stdin")
    return parser


def load_settings(args: argparse.Namespace) -> StationSettings:
    overrides = {
        key: value
        for key in (
            "ports",
            "rounds",
            "parallel_attempts",
            "wait_time",
            "connect_timeout",
            "max_hosts",
            "exclusion",
            "excluded_peers",
            "journal_path",
            "log_level",
        )
        if (value := getattr(args, key, None)) is not None
    }
    return StationSettings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _report(connection: EstablishedConnection, handle: ScanHandle, settings: StationSettings) -> None:
    host, port = connection.peer
    via = f" via {connection.interface}" if connection.interface else ""
    print(f"Found peer {host}:{port}{via}", flush=True)
    if settings.journal_path:
        append_discovery_record(connection_record(connection, scan_id=handle.scan_id), settings.journal_path)


async def run_scan(settings: StationSettings, *, first_only: bool = False) -> int:
    found = 0
    async with settings.to_builder().dispatch() as handle:
        async for connection in handle:
            found += 1
            _report(connection, handle, settings)
            connection.close()
            if first_only:
                break
    if not found:
        print("No peers found", flush=True)
    return 0 if found else 1


async def first_peer(settings: StationSettings) -> EstablishedConnection | None:
    print("Scanning for peer", flush=True)
    async with settings.to_builder().dispatch() as handle:
        try:
            connection = await handle.recv()
        except ScanExhausted:
            return None
        _report(connection, handle, settings)
    return connection


async def relay_commands(connection: EstablishedConnection, lines: asyncio.StreamReader | None = None) -> int:
    """Forward one command per input line until end of input or a write failure."""
    loop = asyncio.get_running_loop()
    try:
        while True:
            if lines is not None:
                raw = (await lines.readline()).decode("utf-8", errors="replace")
            else:
                raw = await loop.run_in_executor(None, sys.stdin.readline)
            if not raw:
                return 0
            if not raw.strip():
                continue
            try:
                command = parse_command(raw)
            except ValueError as exc:
                print(f"{exc}; expected one of {', '.join(c.name for c in Command)}", file=sys.stderr)
                continue
            try:
                await send_command(connection, command)
            except (ConnectionError, OSError) as exc:
                logger.error("Peer %s:%d went away: %s", connection.peer[0], connection.peer[1], exc)
                return 1
            logger.debug("Sent %s to %s:%d", command.name, connection.peer[0], connection.peer[1])
    finally:
        connection.close()


async def run_relay(settings: StationSettings) -> int:
    connection = await first_peer(settings)
    if connection is None:
        print("No peers found", flush=True)
        return 1
    print("Connected!", flush=True)
    return await relay_commands(connection)


def main(argv: Sequence[str] | None = None) -> int:
    """Application entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(settings.log_level)

    if args.command == "relay":
        coro = run_relay(settings)
    else:
        coro = run_scan(settings, first_only=getattr(args, "first", False))
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
