"""Export utilities: the discovered-peer journal."""

from .journal import append_discovery_record, connection_record, read_discovery_records

__all__ = [
    "append_discovery_record",
    "connection_record",
    "read_discovery_records",
]
