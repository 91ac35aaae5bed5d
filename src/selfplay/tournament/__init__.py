"""Candidate-vs-baseline tournaments with SPRT stopping."""

from selfplay.tournament.aggregator import OutcomeAggregator, RunningStatistics
from selfplay.tournament.game_runner import (
    GameConfig,
    GameResult,
    GameRunner,
    Outcome,
    Termination,
)
from selfplay.tournament.openings import load_openings
from selfplay.tournament.orchestrator import Tournament, TournamentReport
from selfplay.tournament.pgn import PGNWriter
from selfplay.tournament.sprt import SPRT, SPRTConfig, SPRTResult, Verdict

__all__ = [
    "GameConfig",
    "GameResult",
    "GameRunner",
    "Outcome",
    "OutcomeAggregator",
    "PGNWriter",
    "RunningStatistics",
    "SPRT",
    "SPRTConfig",
    "SPRTResult",
    "Termination",
    "Tournament",
    "TournamentReport",
    "Verdict",
    "load_openings",
]
