"""In-process engine fakes for game runner and tournament tests."""

import sys
import threading
from pathlib import Path

import chess

from selfplay.configs import EngineConfig
from selfplay.engine.base import MoveReply
from selfplay.errors import EngineCrash, ProtocolFailure

FAKE_UCI = Path(__file__).parent / "engines" / "fake_uci.py"


def fake_uci_config(mode: str, label: str = "candidate", **kwargs) -> EngineConfig:
    """EngineConfig that launches tests/engines/fake_uci.py in ``mode``."""
    return EngineConfig(
        label=label,
        command=sys.executable,
        args=[str(FAKE_UCI), mode],
        **kwargs,
    )


class ScriptedEngine:
    """Deterministic MoveSource.

    Plays ``script`` moves in order, then the first legal move in UCI order.
    ``error`` is raised on request number ``fail_on`` (1-based).
    """

    def __init__(
        self,
        label: str = "candidate",
        script: list[str] | None = None,
        *,
        error: ProtocolFailure | Exception | None = None,
        fail_on: int = 1,
        score_cp: int | None = None,
        elapsed: float = 0.0,
        crash_as_black: bool = False,
    ) -> None:
        self._label = label
        self.script = list(script or [])
        self.error = error
        self.fail_on = fail_on
        self.score_cp = score_cp
        self.elapsed = elapsed
        self.crash_as_black = crash_as_black
        self.requests = 0
        self.shutdown_calls = 0

    @property
    def label(self) -> str:
        return self._label

    def request_move(self, board: chess.Board, clock=None) -> MoveReply:
        self.requests += 1
        if self.error is not None and self.requests >= self.fail_on:
            raise self.error
        if self.crash_as_black and board.turn == chess.BLACK:
            raise EngineCrash(f"{self.label}: crashed as black", label=self.label)

        if self.script:
            move = chess.Move.from_uci(self.script.pop(0))
        else:
            move = sorted(board.legal_moves, key=lambda m: m.uci())[0]
        return MoveReply(move=move, score_cp=self.score_cp, elapsed=self.elapsed)

    def shutdown(self) -> None:
        self.shutdown_calls += 1


class RecordingFactory:
    """Engine factory that builds ScriptedEngines and remembers them.

    ``build`` receives the EngineConfig and returns keyword arguments for
    ScriptedEngine. ``spawn_error`` is raised on creation number
    ``spawn_fail_on`` (1-based).
    """

    def __init__(self, build=None, spawn_error: Exception | None = None, spawn_fail_on: int = 1):
        self.build = build or (lambda config: {})
        self.spawn_error = spawn_error
        self.spawn_fail_on = spawn_fail_on
        self.engines: list[ScriptedEngine] = []
        self.spawned = 0
        self._lock = threading.Lock()

    def __call__(self, config: EngineConfig, time_control) -> ScriptedEngine:
        with self._lock:
            self.spawned += 1
            if self.spawn_error is not None and self.spawned >= self.spawn_fail_on:
                raise self.spawn_error
            engine = ScriptedEngine(config.label, **self.build(config))
            self.engines.append(engine)
            return engine
