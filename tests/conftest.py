"""Pytest configuration and shared fixtures."""

import pytest

from selfplay.configs import EngineConfig, TournamentConfig
from selfplay.engine.time_control import TimeControl
from selfplay.tournament.game_runner import GameConfig
from selfplay.tournament.sprt import SPRTConfig


@pytest.fixture
def engine_configs() -> tuple[EngineConfig, EngineConfig]:
    """Candidate and baseline configs; the command is never executed by fakes."""
    return (
        EngineConfig(label="candidate", command="candidate-engine"),
        EngineConfig(label="baseline", command="baseline-engine"),
    )


@pytest.fixture
def make_config(engine_configs):
    """Build a TournamentConfig for fake engines with selected overrides."""

    def _make(**overrides) -> TournamentConfig:
        candidate, baseline = engine_configs
        params = {
            "candidate": candidate,
            "baseline": baseline,
            "sprt": SPRTConfig(elo0=0.0, elo1=200.0, alpha=0.05, beta=0.05),
            "time_control": TimeControl(move_time=0.01),
            "game": GameConfig(max_plies=40),
            "concurrency": 1,
            "progress": False,
        }
        params.update(overrides)
        return TournamentConfig(**params)

    return _make
