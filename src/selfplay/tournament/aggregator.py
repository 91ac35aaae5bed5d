"""Thread-safe accumulation of game outcomes."""

import threading
from collections import Counter
from dataclasses import dataclass

from loguru import logger

from selfplay.tournament.game_runner import GameResult, Outcome, Termination


@dataclass(frozen=True)
class RunningStatistics:
    """Win/draw/loss counts from the candidate's perspective.

    Instances are immutable snapshots; the aggregator replaces its snapshot
    on every update instead of mutating it.
    """

    wins: int = 0
    draws: int = 0
    losses: int = 0

    def __post_init__(self) -> None:
        if min(self.wins, self.draws, self.losses) < 0:
            raise ValueError(f"Counts must be non-negative: {self}")

    @property
    def games(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def score(self) -> float:
        """Mean score per game, 0.5 before any game."""
        if self.games == 0:
            return 0.5
        return (self.wins + self.draws / 2.0) / self.games

    @property
    def variance(self) -> float:
        """Per-game variance of the score (1, 0.5, 0 per outcome)."""
        if self.games == 0:
            return 0.0
        s = self.score
        return (
            self.wins * (1.0 - s) ** 2
            + self.draws * (0.5 - s) ** 2
            + self.losses * s**2
        ) / self.games

    @property
    def win_rate(self) -> float:
        return self.wins / self.games if self.games else 0.0

    @property
    def draw_rate(self) -> float:
        return self.draws / self.games if self.games else 0.0

    @property
    def loss_rate(self) -> float:
        return self.losses / self.games if self.games else 0.0

    def add(self, outcome: Outcome) -> "RunningStatistics":
        """Return a new snapshot with one more game."""
        if outcome is Outcome.CANDIDATE_WIN:
            return RunningStatistics(self.wins + 1, self.draws, self.losses)
        if outcome is Outcome.DRAW:
            return RunningStatistics(self.wins, self.draws + 1, self.losses)
        return RunningStatistics(self.wins, self.draws, self.losses + 1)


class OutcomeAggregator:
    """Collects game results from concurrent workers.

    All updates go through a single lock, so every ``record`` call is applied
    atomically and ``snapshot`` always returns a state that existed at some
    instant.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = RunningStatistics()
        self._terminations: Counter[Termination] = Counter()

    def record(self, result: GameResult) -> RunningStatistics:
        """Add a finished game.

        Returns:
            The snapshot produced by this update. Callers that need to react
            to exactly this game (e.g. the SPRT stopping rule) should use it
            rather than calling ``snapshot`` again.
        """
        with self._lock:
            self._stats = self._stats.add(result.outcome)
            self._terminations[result.termination] += 1
            stats = self._stats

        logger.debug(
            f"Game {result.game_index}: {result.outcome.value} "
            f"({result.termination.value}) -> W{stats.wins} D{stats.draws} L{stats.losses}"
        )
        return stats

    def snapshot(self) -> RunningStatistics:
        with self._lock:
            return self._stats

    def terminations(self) -> dict[Termination, int]:
        """Count of finished games per termination reason."""
        with self._lock:
            return dict(self._terminations)
