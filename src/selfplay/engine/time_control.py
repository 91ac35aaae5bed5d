"""Time controls and per-game clocks."""

from dataclasses import dataclass

import chess

from selfplay.errors import ConfigurationError


@dataclass(frozen=True)
class TimeControl:
    """How long an engine may think about each move.

    Exactly the limits that are set are sent to the engine. When
    ``base_time`` is set the game is clocked and the deadline for a move is
    whatever remains on the mover's clock.
    """

    move_time: float | None = None  # Seconds per move (go movetime)
    base_time: float | None = None  # Seconds on the clock at game start
    increment: float = 0.0  # Seconds added after each move
    nodes: int | None = None
    depth: int | None = None

    # Grace period on top of every deadline (pipe latency, process scheduling)
    margin: float = 0.1

    # Deadline for searches bounded only by nodes or depth
    fallback_timeout: float = 60.0

    def __post_init__(self) -> None:
        if all(
            limit is None
            for limit in (self.move_time, self.base_time, self.nodes, self.depth)
        ):
            raise ConfigurationError(
                "Time control needs at least one of move_time, base_time, nodes, depth"
            )
        for name in ("move_time", "base_time", "nodes", "depth"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.increment < 0:
            raise ConfigurationError(f"increment must be >= 0, got {self.increment}")
        if self.margin < 0:
            raise ConfigurationError(f"margin must be >= 0, got {self.margin}")
        if self.fallback_timeout <= 0:
            raise ConfigurationError(
                f"fallback_timeout must be positive, got {self.fallback_timeout}"
            )

    @property
    def clocked(self) -> bool:
        return self.base_time is not None

    def go_command(self, clock: "GameClock | None" = None) -> str:
        """Build the UCI ``go`` line for the next search."""
        parts = ["go"]
        if self.clocked and clock is not None:
            parts += [
                "wtime", str(_ms(clock.remaining(chess.WHITE))),
                "btime", str(_ms(clock.remaining(chess.BLACK))),
                "winc", str(_ms(self.increment)),
                "binc", str(_ms(self.increment)),
            ]
        elif self.move_time is not None:
            parts += ["movetime", str(_ms(self.move_time))]
        if self.nodes is not None:
            parts += ["nodes", str(self.nodes)]
        if self.depth is not None:
            parts += ["depth", str(self.depth)]
        return " ".join(parts)

    def deadline(self, color: chess.Color, clock: "GameClock | None" = None) -> float:
        """Seconds the side to move may take before the move times out."""
        if self.clocked and clock is not None:
            return max(clock.remaining(color), 0.0) + self.margin
        if self.move_time is not None:
            return self.move_time + self.margin
        return self.fallback_timeout

    def new_clock(self) -> "GameClock | None":
        """Fresh clock for one game, or None for unclocked time controls."""
        if not self.clocked:
            return None
        return GameClock(self)


def _ms(seconds: float) -> int:
    return max(int(round(seconds * 1000)), 0)


class GameClock:
    """Remaining thinking time of both sides during a single game."""

    def __init__(self, time_control: TimeControl) -> None:
        if time_control.base_time is None:
            raise ConfigurationError("GameClock requires a base_time")
        self.time_control = time_control
        self._remaining = {
            chess.WHITE: time_control.base_time,
            chess.BLACK: time_control.base_time,
        }

    def remaining(self, color: chess.Color) -> float:
        return self._remaining[color]

    def consume(self, color: chess.Color, elapsed: float) -> bool:
        """Charge ``elapsed`` seconds to ``color``.

        Returns:
            False if the side ran out of time (beyond the grace margin),
            True otherwise. The increment is only added to a surviving clock.
        """
        left = self._remaining[color] - elapsed
        if left < -self.time_control.margin:
            self._remaining[color] = 0.0
            return False
        self._remaining[color] = max(left, 0.0) + self.time_control.increment
        return True
