"""Peer exclusion policies applied before any candidate is dialed."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .ip_utils import Endpoint, normalize_endpoint


class ExclusionMode(str, Enum):
    NEVER = "never"
    PRE_EXCLUDED = "pre_excluded"
    CONNECT_ONCE = "connect_once"


@dataclass(frozen=True, slots=True)
class PeerExclusion:
    """Configured exclusion policy.

    ``NEVER`` dials everything, ``PRE_EXCLUDED`` skips a fixed set of
    endpoints, and ``CONNECT_ONCE`` skips endpoints that already produced a
    delivered connection in an earlier round.
    """

    mode: ExclusionMode = ExclusionMode.CONNECT_ONCE
    peers: tuple[Endpoint, ...] = ()

    @classmethod
    def never(cls) -> PeerExclusion:
        return cls(mode=ExclusionMode.NEVER)

    @classmethod
    def pre_excluded(cls, peers: Iterable[Endpoint | str]) -> PeerExclusion:
        return cls(mode=ExclusionMode.PRE_EXCLUDED, peers=tuple(normalize_endpoint(peer) for peer in peers))

    @classmethod
    def connect_once(cls) -> PeerExclusion:
        return cls(mode=ExclusionMode.CONNECT_ONCE)

    @classmethod
    def from_name(cls, name: str, peers: Iterable[Endpoint | str] = ()) -> PeerExclusion:
        mode = ExclusionMode(name.strip().lower().replace("-", "_"))
        if mode is ExclusionMode.PRE_EXCLUDED:
            return cls.pre_excluded(peers)
        return cls(mode=mode)

    def build(self) -> ExclusionSet:
        return ExclusionSet(self.mode, self.peers)


class ExclusionSet:
    """Membership test over excluded endpoints for one engine run."""

    def __init__(self, mode: ExclusionMode, peers: Iterable[Endpoint] = ()) -> None:
        self.mode = mode
        self._peers: set[Endpoint] = set(peers) if mode is ExclusionMode.PRE_EXCLUDED else set()

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    @property
    def peers(self) -> frozenset[Endpoint]:
        return frozenset(self._peers)

    def record_connected(self, endpoint: Endpoint) -> None:
        """Remember a connected peer; only ``CONNECT_ONCE`` keeps it."""
        if self.mode is ExclusionMode.CONNECT_ONCE:
            self._peers.add(endpoint)
