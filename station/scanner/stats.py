"""Optional instrumentation hooks for scan rounds and connect attempts."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import time

from .ip_utils import Candidate, Endpoint


class ScanObserver:
    """No-op base; override the events you care about."""

    def on_round_start(self, round_number: int, candidates: int) -> None:
        pass

    def on_round_complete(self, round_number: int) -> None:
        pass

    def on_attempt(self, candidate: Candidate) -> None:
        pass

    def on_attempt_done(self, candidate: Candidate) -> None:
        pass

    def on_connected(self, candidate: Candidate) -> None:
        pass

    def on_failed(self, candidate: Candidate, error: BaseException) -> None:
        pass


@dataclass
class ScanStats(ScanObserver):
    """Counts rounds, attempts, successes and failures.

    ``in_flight`` tracks attempts between permit acquisition and completion,
    and ``peak_in_flight`` keeps its high-water mark.
    """

    rounds: int = 0
    completed_rounds: int = 0
    round_started_at: list[float] = field(default_factory=list)
    candidates_per_round: list[int] = field(default_factory=list)
    attempts: Counter[Endpoint] = field(default_factory=Counter)
    successes: Counter[Endpoint] = field(default_factory=Counter)
    failures: Counter[Endpoint] = field(default_factory=Counter)
    in_flight: int = 0
    peak_in_flight: int = 0

    @property
    def total_attempts(self) -> int:
        return sum(self.attempts.values())

    def on_round_start(self, round_number: int, candidates: int) -> None:
        self.rounds += 1
        self.round_started_at.append(time.monotonic())
        self.candidates_per_round.append(candidates)

    def on_round_complete(self, round_number: int) -> None:
        self.completed_rounds += 1

    def on_attempt(self, candidate: Candidate) -> None:
        self.attempts[candidate.endpoint] += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def on_attempt_done(self, candidate: Candidate) -> None:
        self.in_flight -= 1

    def on_connected(self, candidate: Candidate) -> None:
        self.successes[candidate.endpoint] += 1

    def on_failed(self, candidate: Candidate, error: BaseException) -> None:
        self.failures[candidate.endpoint] += 1
