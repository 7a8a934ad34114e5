"""JSON-lines journal of discovered peers."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import json
from pathlib import Path
import threading
from typing import Any, Iterator

from station.scanner.engine import EstablishedConnection

_APPEND_LOCK = threading.Lock()

DEFAULT_JOURNAL_PATH = Path("station_peers.jsonl")


@contextmanager
def _advisory_file_lock(path: Path) -> Iterator[None]:
    """Best-effort exclusive lock on a sidecar ``.lock`` file."""
    lock_path = path.with_suffix(path.suffix + ".lock")
    with lock_path.open("a+", encoding="utf-8") as lock_file:
        try:
            import fcntl
        except ModuleNotFoundError:
            # Windows: process-level lock only.
            yield
            return
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def connection_record(connection: EstablishedConnection, *, scan_id: int | None = None) -> dict[str, Any]:
    record: dict[str, Any] = {
        "peer_host": connection.peer[0],
        "peer_port": connection.peer[1],
        "interface": connection.interface,
    }
    if connection.local:
        record["local_host"], record["local_port"] = connection.local
    if scan_id is not None:
        record["scan_id"] = f"{scan_id:04x}"
    return record


def append_discovery_record(record: dict[str, Any], path: str | Path = DEFAULT_JOURNAL_PATH) -> Path:
    """Append one record, stamped with a UTC timestamp if it has none."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = dict(record)
    payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    with _APPEND_LOCK, _advisory_file_lock(target):
        with target.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return target


def read_discovery_records(path: str | Path = DEFAULT_JOURNAL_PATH) -> list[dict[str, Any]]:
    target = Path(path)
    if not target.exists():
        return []
    records: list[dict[str, Any]] = []
    with target.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                decoded = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(decoded, dict):
                records.append(decoded)
    return records
