"""Engine capability protocol used by the game runner."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import chess

if TYPE_CHECKING:
    from selfplay.engine.time_control import GameClock


class EngineState(Enum):
    """Lifecycle of an engine process."""

    NOT_STARTED = "not_started"
    READY = "ready"  # Handshake done, waiting for a position
    BUSY = "busy"  # Searching
    CRASHED = "crashed"  # Process exited on its own
    TERMINATED = "terminated"  # Shut down by us


@dataclass(frozen=True)
class MoveReply:
    """A move returned by an engine, plus what it said about the position."""

    move: chess.Move

    # Last score reported in an "info" line, from the mover's point of view
    score_cp: int | None = None
    mate: int | None = None

    # Wall-clock seconds between "go" and "bestmove"
    elapsed: float = 0.0

    @property
    def has_score(self) -> bool:
        return self.score_cp is not None or self.mate is not None

    def score_or_mate(self, mate_value: int = 100_000) -> int | None:
        """Score in centipawns with mates mapped to +/- ``mate_value``."""
        if self.mate is not None:
            return mate_value if self.mate > 0 else -mate_value
        return self.score_cp


class MoveSource(Protocol):
    """Anything that can play moves in a game.

    The game runner only depends on this protocol, so tests can substitute
    deterministic fakes for real engine processes.
    """

    @property
    def label(self) -> str:
        """Return "candidate" or "baseline" (or any display name)."""
        ...

    def request_move(
        self, board: chess.Board, clock: "GameClock | None" = None
    ) -> MoveReply:
        """Ask for a move in the given position.

        Args:
            board: Current position with full move history. Not modified.
            clock: Game clock for clocked time controls, if any.

        Raises:
            ProtocolFailure: On timeout, crash or a malformed answer.
        """
        ...

    def shutdown(self) -> None:
        """Release the engine. Must be safe to call more than once."""
        ...
