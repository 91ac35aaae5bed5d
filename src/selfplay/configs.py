"""Strongly-typed configuration for SPRT tournaments.

YAML files are loaded with OmegaConf (see ``selfplay.utils.config``) and
converted into these dataclasses, which validate themselves on creation.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from selfplay.engine.time_control import TimeControl
from selfplay.errors import ConfigurationError
from selfplay.tournament.game_runner import GameConfig
from selfplay.tournament.sprt import SPRTConfig


@dataclass
class EngineConfig:
    """How to launch one of the two engines."""

    label: str = "candidate"
    command: str = ""
    args: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)  # UCI setoption
    working_dir: str | None = None
    handshake_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not self.command:
            raise ConfigurationError(f"{self.label}: engine command is empty")
        if self.handshake_timeout <= 0:
            raise ConfigurationError(
                f"{self.label}: handshake_timeout must be positive, got {self.handshake_timeout}"
            )


@dataclass
class OpeningsConfig:
    """Opening book. Without a path every game starts from the initial position."""

    path: str | None = None
    shuffle: bool = True
    seed: int | None = None
    max_openings: int | None = None


@dataclass
class OutputConfig:
    pgn_path: str | None = None
    event: str = "SPRT Tournament"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_file: str | None = None


@dataclass
class TournamentConfig:
    """Top-level configuration combining all sub-configs."""

    candidate: EngineConfig
    baseline: EngineConfig
    sprt: SPRTConfig = field(default_factory=SPRTConfig)
    time_control: TimeControl = field(default_factory=lambda: TimeControl(move_time=0.1))
    game: GameConfig = field(default_factory=GameConfig)
    openings: OpeningsConfig = field(default_factory=OpeningsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    concurrency: int = 1
    max_games: int | None = None  # None: run until the SPRT concludes
    progress: bool = True

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.max_games is not None and self.max_games < 1:
            raise ConfigurationError(f"max_games must be at least 1, got {self.max_games}")


def config_from_dict(data: dict[str, Any]) -> TournamentConfig:
    """Create TournamentConfig from a dictionary (e.g., from OmegaConf).

    Args:
        data: Dictionary with configuration values.

    Returns:
        TournamentConfig instance.

    Raises:
        ConfigurationError: If a section is missing, has unknown keys or
            holds invalid values.
    """
    for section in ("candidate", "baseline"):
        if not data.get(section):
            raise ConfigurationError(f"Missing '{section}' engine section")

    try:
        return TournamentConfig(
            candidate=EngineConfig(**{"label": "candidate", **data["candidate"]}),
            baseline=EngineConfig(**{"label": "baseline", **data["baseline"]}),
            sprt=SPRTConfig(**data.get("sprt", {})),
            time_control=TimeControl(**data.get("time_control", {"move_time": 0.1})),
            game=GameConfig(**data.get("game", {})),
            openings=OpeningsConfig(**data.get("openings", {})),
            output=OutputConfig(**data.get("output", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            concurrency=data.get("concurrency", 1),
            max_games=data.get("max_games"),
            progress=data.get("progress", True),
        )
    except TypeError as e:
        # Unknown keys surface as unexpected keyword arguments
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def config_to_dict(config: TournamentConfig) -> dict[str, Any]:
    """Convert TournamentConfig to a dictionary for serialization."""
    return asdict(config)
