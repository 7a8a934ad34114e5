"""Station: LAN peer discovery by bounded TCP connect scanning."""

__version__ = "0.1.0"
