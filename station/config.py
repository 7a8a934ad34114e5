"""
Process configuration loaded from environment variables.

Every field can be set through a ``STATION_`` prefixed variable, for
example ``STATION_PORTS='[1000, 1001]'`` or ``STATION_ROUNDS=3``. Command
line flags override these values.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from station.scanner import PeerExclusion, ScanBuilder, ScanCount


class StationSettings(BaseSettings):
    """Scan and logging defaults for the command-line entry point."""

    model_config = SettingsConfigDict(env_prefix="STATION_")

    ports: list[int] = Field(default=[1000], description="Target TCP ports to probe")
    rounds: int = Field(default=0, ge=0, description="Scan rounds to run; 0 scans until a peer is used")
    parallel_attempts: int = Field(default=1000, ge=1, description="Concurrent connect attempts")
    wait_time: float = Field(default=5.0, ge=0, description="Seconds between scan rounds")
    connect_timeout: Optional[float] = Field(default=None, gt=0, description="Per-attempt timeout override")
    max_hosts: Optional[int] = Field(default=None, ge=1, description="Cap on hosts probed per subnet")
    exclusion: str = Field(default="connect_once", description="never, pre_excluded or connect_once")
    excluded_peers: list[str] = Field(default_factory=list, description="host:port entries for pre_excluded")
    log_level: str = Field(default="INFO", description="Logging level name")
    journal_path: Optional[Path] = Field(default=None, description="JSON-lines file recording found peers")

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("at least one port is required")
        for port in value:
            if not 0 < port <= 65535:
                raise ValueError(f"invalid port: {port}")
        return value

    @field_validator("exclusion")
    @classmethod
    def validate_exclusion(cls, value: str) -> str:
        normalized = value.strip().lower().replace("-", "_")
        if normalized not in {"never", "pre_excluded", "connect_once"}:
            raise ValueError(f"unknown exclusion policy: {value}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        return value.strip().upper()

    def scan_count(self) -> ScanCount:
        return ScanCount.infinite() if self.rounds == 0 else ScanCount.limited(self.rounds)

    def peer_exclusion(self) -> PeerExclusion:
        return PeerExclusion.from_name(self.exclusion, self.excluded_peers)

    def to_builder(self) -> ScanBuilder:
        return (
            ScanBuilder()
            .scan_count(self.scan_count())
            .excluded_peers(self.peer_exclusion())
            .add_ports(self.ports)
            .parallel_attempts(self.parallel_attempts)
            .wait_time(self.wait_time)
            .connect_timeout(self.connect_timeout)
            .max_hosts(self.max_hosts)
        )
