"""Scanner package: interface enumeration and the round-based connect engine."""

from .engine import (
    EstablishedConnection,
    ScanBuilder,
    ScanConfig,
    ScanCount,
    ScanEngine,
    ScanHandle,
    open_bound_connection,
    start_scan,
)
from .errors import ScanConfigError, ScanExhausted, ScannerError
from .exclusion import ExclusionMode, ExclusionSet, PeerExclusion
from .interfaces import IPv4Config, NetworkInterface, list_interfaces
from .ip_utils import Candidate, expand_candidates
from .stats import ScanObserver, ScanStats

__all__ = [
    "Candidate",
    "EstablishedConnection",
    "ExclusionMode",
    "ExclusionSet",
    "IPv4Config",
    "NetworkInterface",
    "PeerExclusion",
    "ScanBuilder",
    "ScanConfig",
    "ScanConfigError",
    "ScanCount",
    "ScanEngine",
    "ScanExhausted",
    "ScanHandle",
    "ScanObserver",
    "ScanStats",
    "ScannerError",
    "expand_candidates",
    "list_interfaces",
    "open_bound_connection",
    "start_scan",
]
