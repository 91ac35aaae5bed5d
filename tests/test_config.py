"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from omegaconf import OmegaConf

from selfplay.configs import EngineConfig, TournamentConfig, config_from_dict, config_to_dict
from selfplay.errors import ConfigurationError
from selfplay.utils.config import load_config, load_tournament_config, save_config

REPO_CONFIG = Path(__file__).parents[1] / "configs" / "sprt.yaml"

MINIMAL = """
candidate:
  command: ./new-engine
baseline:
  command: ./old-engine
sprt:
  elo0: 0
  elo1: 5
time_control:
  move_time: 0.05
concurrency: 2
"""


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "sprt.yaml"
    path.write_text(MINIMAL)
    return path


class TestLoading:
    """YAML loading and overrides."""

    def test_load_minimal(self, config_file) -> None:
        config = load_tournament_config(config_file)

        assert isinstance(config, TournamentConfig)
        assert config.candidate.label == "candidate"
        assert config.baseline.label == "baseline"
        assert config.baseline.command == "./old-engine"
        assert config.sprt.elo1 == 5
        assert config.time_control.move_time == 0.05
        assert config.concurrency == 2
        assert config.max_games is None
        assert config.game.max_plies == 400

    def test_overrides(self, config_file) -> None:
        config = load_tournament_config(
            config_file, ["sprt.elo1=10", "candidate.command=./patched", "max_games=50"]
        )
        assert config.sprt.elo1 == 10
        assert config.candidate.command == "./patched"
        assert config.max_games == 50

    def test_load_config_returns_dictconfig(self, config_file) -> None:
        config = load_config(config_file)
        assert OmegaConf.select(config, "candidate.command") == "./new-engine"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_tournament_config(tmp_path / "nope.yaml")

    def test_repository_config_is_valid(self) -> None:
        config = load_tournament_config(REPO_CONFIG)
        assert config.time_control.clocked
        assert config.sprt.elo0 == 0
        assert config.sprt.elo1 == 10

    def test_round_trip(self, config_file, tmp_path) -> None:
        config = load_tournament_config(config_file)
        saved = tmp_path / "out" / "saved.yaml"
        save_config(config, saved)

        assert load_tournament_config(saved) == config


class TestValidation:
    """Invalid configurations are rejected before any engine starts."""

    def base(self) -> dict:
        return {
            "candidate": {"command": "./new"},
            "baseline": {"command": "./old"},
        }

    def test_missing_engine_section(self) -> None:
        with pytest.raises(ConfigurationError, match="baseline"):
            config_from_dict({"candidate": {"command": "./new"}})

    def test_empty_command(self) -> None:
        data = self.base()
        data["candidate"]["command"] = ""
        with pytest.raises(ConfigurationError):
            config_from_dict(data)

    def test_unknown_key(self) -> None:
        data = self.base()
        data["sprt"] = {"elo0": 0, "elo1": 5, "elo2": 10}
        with pytest.raises(ConfigurationError):
            config_from_dict(data)

    @pytest.mark.parametrize(
        "section, values",
        [
            ("sprt", {"elo0": 5, "elo1": 5}),
            ("sprt", {"alpha": 0.0}),
            ("sprt", {"alpha": 0.6, "beta": 0.5}),
            ("time_control", {"move_time": -1}),
        ],
    )
    def test_invalid_values(self, section, values) -> None:
        data = self.base()
        data[section] = values
        with pytest.raises(ConfigurationError):
            config_from_dict(data)

    @pytest.mark.parametrize("key, value", [("concurrency", 0), ("max_games", 0)])
    def test_invalid_limits(self, key, value) -> None:
        data = self.base()
        data[key] = value
        with pytest.raises(ConfigurationError):
            config_from_dict(data)

    def test_regression_bounds_allowed(self) -> None:
        data = self.base()
        data["sprt"] = {"elo0": -10, "elo1": 0}
        config = config_from_dict(data)
        assert config.sprt.elo0 == -10

    def test_handshake_timeout(self) -> None:
        with pytest.raises(ConfigurationError):
            EngineConfig(command="./engine", handshake_timeout=0)

    def test_to_dict(self) -> None:
        config = config_from_dict(self.base())
        data = config_to_dict(config)
        assert data["candidate"]["command"] == "./new"
        assert data["sprt"]["alpha"] == 0.05
        assert config_from_dict(data) == config
