"""Game runner for candidate-vs-baseline matches.

Plays one game between two engines and reduces it to a single result from
the candidate's point of view. The board is refereed by python-chess, never
by the engines: a buggy candidate cannot claim a mate or a draw that did not
happen.
"""

from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable

import chess
import chess.syzygy
from loguru import logger

from selfplay.engine.base import MoveReply, MoveSource
from selfplay.engine.time_control import TimeControl
from selfplay.errors import (
    ConfigurationError,
    EngineCrash,
    EngineTimeout,
    IllegalResponse,
    ProtocolFailure,
)

if TYPE_CHECKING:
    from selfplay.configs import EngineConfig

EngineFactory = Callable[["EngineConfig", TimeControl], MoveSource]


class Outcome(Enum):
    """Game outcome from the candidate's perspective."""

    CANDIDATE_WIN = "win"
    DRAW = "draw"
    CANDIDATE_LOSS = "loss"

    @property
    def score(self) -> float:
        return {"win": 1.0, "draw": 0.5, "loss": 0.0}[self.value]


class Termination(Enum):
    """How a game ended."""

    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW_BY_RULE = "draw_by_rule"  # Repetition, fifty moves, insufficient material
    RESIGNATION = "resignation"
    TIMEOUT = "timeout"
    ILLEGAL_MOVE = "illegal_move"
    CRASH = "crash"
    ADJUDICATION = "adjudication"  # Score, move-limit or tablebase adjudication

    @property
    def is_protocol_failure(self) -> bool:
        return self in (Termination.TIMEOUT, Termination.ILLEGAL_MOVE, Termination.CRASH)


@dataclass(frozen=True)
class GameConfig:
    """Adjudication rules applied on top of the rules of chess."""

    # Draw once this many plies have been played (None: no limit)
    max_plies: int | None = 400

    # Draw adjudication: both engines report |score| <= draw_score for
    # draw_move_count consecutive plies, starting at full move draw_move_number
    draw_move_number: int = 40
    draw_move_count: int = 8  # 0 disables
    draw_score: int = 10  # Centipawns

    # Resignation: an engine reports <= -resign_score on resign_move_count
    # consecutive moves of its own
    resign_move_count: int = 3  # 0 disables
    resign_score: int = 1000  # Centipawns

    # Syzygy tablebase adjudication
    syzygy_enabled: bool = False
    syzygy_path: str | None = None
    syzygy_adjudicate_draw: bool = True  # Adjudicate WDL=0 as draw
    syzygy_adjudicate_win: bool = True  # Adjudicate WDL=±2 as win/loss


@dataclass(frozen=True)
class GameResult:
    """Result of a single game. Immutable once produced."""

    outcome: Outcome
    termination: Termination
    candidate_white: bool
    ply_count: int
    opening_fen: str
    moves: tuple[str, ...] = ()

    # PGN result from White's perspective: "1-0", "0-1" or "1/2-1/2"
    result: str = "*"

    game_index: int = 0
    detail: str | None = None  # Error message for protocol failures
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def candidate_color(self) -> chess.Color:
        return chess.WHITE if self.candidate_white else chess.BLACK

    @property
    def score(self) -> float:
        return self.outcome.score

    def to_pgn(
        self,
        candidate_name: str = "candidate",
        baseline_name: str = "baseline",
        event: str = "SPRT Tournament",
    ) -> str:
        """Render the game as a PGN record."""
        white_name = candidate_name if self.candidate_white else baseline_name
        black_name = baseline_name if self.candidate_white else candidate_name

        lines = [
            f'[Event "{event}"]',
            '[Site "Local"]',
            f'[Date "{self.timestamp[:10].replace("-", ".")}"]',
            f'[Round "{self.game_index + 1}"]',
            f'[White "{white_name}"]',
            f'[Black "{black_name}"]',
            f'[Result "{self.result}"]',
            f'[FEN "{self.opening_fen}"]',
            '[SetUp "1"]',
            f'[PlyCount "{self.ply_count}"]',
            f'[Termination "{self.termination.value}"]',
            "",
        ]

        board = chess.Board(self.opening_fen)
        parts: list[str] = []
        for i, uci in enumerate(self.moves):
            move = chess.Move.from_uci(uci)
            if board.turn == chess.WHITE:
                parts.append(f"{board.fullmove_number}.")
            elif i == 0:
                parts.append(f"{board.fullmove_number}...")
            parts.append(board.san(move))
            board.push(move)

        if self.detail:
            parts.append("{" + self.detail.replace("}", ")") + "}")
        parts.append(self.result)
        lines.append(" ".join(parts))
        lines.append("")
        return "\n".join(lines)


def candidate_plays_white(game_index: int) -> bool:
    """Colors alternate every game: even games white, odd games black."""
    return game_index % 2 == 0


def opening_for(game_index: int, openings: list[str]) -> str:
    """Each opening is used for two consecutive games, one per color."""
    if not openings:
        return chess.STARTING_FEN
    return openings[(game_index // 2) % len(openings)]


class GameRunner:
    """Plays games between a candidate and a baseline engine."""

    def __init__(
        self,
        config: GameConfig | None = None,
        time_control: TimeControl | None = None,
    ) -> None:
        """Initialize game runner.

        Args:
            config: Adjudication configuration.
            time_control: Time control for engines started by
                ``play_fresh_game``; clocked controls also drive the game clock.
        """
        self.config = config or GameConfig()
        self.time_control = time_control
        self._tablebase: chess.syzygy.Tablebase | None = None

        if self.config.syzygy_enabled and self.config.syzygy_path:
            self._open_tablebases(Path(self.config.syzygy_path))

    def _open_tablebases(self, path: Path) -> None:
        if not path.exists():
            logger.warning(f"Syzygy path not found: {path}")
            return

        try:
            self._tablebase = chess.syzygy.open_tablebase(str(path))
            for subdir in path.iterdir():
                if subdir.is_dir():
                    self._tablebase.add_directory(str(subdir))
            logger.info(f"Loaded Syzygy tablebases from {path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load Syzygy tablebases: {e}")
            self._tablebase = None

    def close(self) -> None:
        """Close tablebase files."""
        if self._tablebase is not None:
            self._tablebase.close()
            self._tablebase = None

    def __enter__(self) -> "GameRunner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _syzygy_winner(self, board: chess.Board) -> tuple[bool, chess.Color | None]:
        """Probe the tablebases.

        Returns:
            (adjudicated, winner) where winner is None for a draw.
        """
        if self._tablebase is None:
            return False, None
        if board.castling_rights or chess.popcount(board.occupied) > 7:
            return False, None

        try:
            wdl = self._tablebase.probe_wdl(board)
        except KeyError:
            return False, None

        # WDL is from the side to move: 2 win, 1 cursed win, 0 draw, -1, -2
        # Cursed results depend on the fifty-move rule and are left to play.
        if abs(wdl) == 2 and self.config.syzygy_adjudicate_win:
            return True, board.turn if wdl == 2 else not board.turn
        if wdl == 0 and self.config.syzygy_adjudicate_draw:
            return True, None
        return False, None

    def play_game(
        self,
        candidate: MoveSource,
        baseline: MoveSource,
        opening_fen: str = chess.STARTING_FEN,
        candidate_white: bool = True,
        game_index: int = 0,
    ) -> GameResult:
        """Play a single game to completion.

        Terminal states are checked in order: the rules of chess, then
        engine resignation and score adjudication, then protocol failures.
        A protocol failure (timeout, crash, malformed or illegal move) ends
        the game at once as a loss for the side that caused it.

        Args:
            candidate: The engine under test.
            baseline: The reference engine.
            opening_fen: Starting position.
            candidate_white: If True, the candidate plays White.
            game_index: Position of this game in the tournament.

        Returns:
            GameResult from the candidate's perspective.
        """
        board = chess.Board(opening_fen)
        clock = self.time_control.new_clock() if self.time_control else None
        seats = {
            chess.WHITE: candidate if candidate_white else baseline,
            chess.BLACK: baseline if candidate_white else candidate,
        }

        losing_streak = {chess.WHITE: 0, chess.BLACK: 0}
        drawish_plies = 0
        detail: str | None = None

        while True:
            outcome = board.outcome(claim_draw=True)
            if outcome is not None:
                termination, winner = _rules_termination(outcome)
                break

            adjudicated, winner = self._syzygy_winner(board)
            if adjudicated:
                termination = Termination.ADJUDICATION
                detail = "tablebase"
                break

            if self.config.max_plies is not None and len(board.move_stack) >= self.config.max_plies:
                termination, winner = Termination.ADJUDICATION, None
                detail = "move limit"
                break

            mover = board.turn
            engine = seats[mover]

            try:
                reply = engine.request_move(board, clock)
            except EngineTimeout as e:
                termination, winner, detail = Termination.TIMEOUT, not mover, str(e)
                break
            except EngineCrash as e:
                termination, winner, detail = Termination.CRASH, not mover, str(e)
                break
            except IllegalResponse as e:
                termination, winner, detail = Termination.ILLEGAL_MOVE, not mover, str(e)
                break
            except ProtocolFailure as e:
                termination, winner, detail = Termination.CRASH, not mover, str(e)
                break

            if clock is not None and not clock.consume(mover, reply.elapsed):
                termination, winner = Termination.TIMEOUT, not mover
                detail = f"{engine.label}: flagged after {reply.elapsed:.3f}s"
                break

            if reply.move not in board.legal_moves:
                termination, winner = Termination.ILLEGAL_MOVE, not mover
                detail = f"{engine.label}: illegal move {reply.move.uci()}"
                break

            board.push(reply.move)

            # A move that ends the game is scored by the rules, not by whatever
            # the engine thought of the position.
            if board.outcome(claim_draw=True) is not None:
                continue

            if self._resigns(reply, mover, losing_streak):
                termination, winner = Termination.RESIGNATION, not mover
                detail = f"{engine.label} resigns"
                break

            drawish_plies = self._drawish_plies(reply, board, drawish_plies)
            if self.config.draw_move_count > 0 and drawish_plies >= self.config.draw_move_count:
                termination, winner = Termination.ADJUDICATION, None
                detail = "draw by score"
                break

        if termination.is_protocol_failure:
            logger.warning(f"Game {game_index}: {termination.value}: {detail}")

        result = _pgn_result(winner)
        candidate_color = chess.WHITE if candidate_white else chess.BLACK
        if winner is None:
            game_outcome = Outcome.DRAW
        elif winner == candidate_color:
            game_outcome = Outcome.CANDIDATE_WIN
        else:
            game_outcome = Outcome.CANDIDATE_LOSS

        return GameResult(
            outcome=game_outcome,
            termination=termination,
            candidate_white=candidate_white,
            ply_count=len(board.move_stack),
            opening_fen=opening_fen,
            moves=tuple(m.uci() for m in board.move_stack),
            result=result,
            game_index=game_index,
            detail=detail,
        )

    def _resigns(
        self, reply: MoveReply, mover: chess.Color, losing_streak: dict[chess.Color, int]
    ) -> bool:
        if self.config.resign_move_count <= 0:
            return False
        score = reply.score_or_mate()
        if score is not None and score <= -self.config.resign_score:
            losing_streak[mover] += 1
        else:
            losing_streak[mover] = 0
        return losing_streak[mover] >= self.config.resign_move_count

    def _drawish_plies(self, reply: MoveReply, board: chess.Board, streak: int) -> int:
        if self.config.draw_move_count <= 0 or board.fullmove_number < self.config.draw_move_number:
            return 0
        score = reply.score_or_mate()
        if score is None or abs(score) > self.config.draw_score:
            return 0
        return streak + 1

    def play_fresh_game(
        self,
        engine_factory: EngineFactory,
        candidate_config: "EngineConfig",
        baseline_config: "EngineConfig",
        opening_fen: str = chess.STARTING_FEN,
        candidate_white: bool = True,
        game_index: int = 0,
    ) -> GameResult:
        """Spawn a new engine pair, play one game and shut both down.

        The engines are released on every exit path, including spawn
        failures of the second engine and unexpected errors.

        Raises:
            SpawnFailure: If either engine cannot be started.
        """
        if self.time_control is None:
            raise ConfigurationError("GameRunner needs a time control to start engines")
        time_control = self.time_control

        with ExitStack() as stack:
            candidate = engine_factory(candidate_config, time_control)
            stack.callback(candidate.shutdown)
            baseline = engine_factory(baseline_config, time_control)
            stack.callback(baseline.shutdown)

            return self.play_game(
                candidate,
                baseline,
                opening_fen=opening_fen,
                candidate_white=candidate_white,
                game_index=game_index,
            )


def _rules_termination(outcome: chess.Outcome) -> tuple[Termination, chess.Color | None]:
    if outcome.termination == chess.Termination.CHECKMATE:
        return Termination.CHECKMATE, outcome.winner
    if outcome.termination == chess.Termination.STALEMATE:
        return Termination.STALEMATE, None
    if outcome.winner is None:
        return Termination.DRAW_BY_RULE, None
    # Variant wins (not reachable in standard chess)
    return Termination.ADJUDICATION, outcome.winner


def _pgn_result(winner: chess.Color | None) -> str:
    if winner is None:
        return "1/2-1/2"
    return "1-0" if winner == chess.WHITE else "0-1"
