"""Engine process adapters."""

from selfplay.engine.base import EngineState, MoveReply, MoveSource
from selfplay.engine.time_control import GameClock, TimeControl
from selfplay.engine.uci_engine import UCIEngine

__all__ = [
    "EngineState",
    "GameClock",
    "MoveReply",
    "MoveSource",
    "TimeControl",
    "UCIEngine",
]
