"""UCI engine adapter for self-play games.

Each ``UCIEngine`` owns one engine subprocess driven through pexpect, which
handles PTY allocation and line buffering for us. An engine lives for exactly
one game: the tournament spawns a fresh pair per game so no hash tables or
other search state leak from one trial into the next.
"""

import re
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import chess
import pexpect
from loguru import logger

from selfplay.engine.base import EngineState, MoveReply
from selfplay.engine.time_control import GameClock, TimeControl
from selfplay.errors import (
    EngineCrash,
    EngineTimeout,
    IllegalResponse,
    SpawnFailure,
)

if TYPE_CHECKING:
    from selfplay.configs import EngineConfig

_BESTMOVE = re.compile(r"bestmove\s+(\S+)[^\r\n]*\r?\n")
_INFO_SCORE = re.compile(r"info\s[^\r\n]*?score\s+(cp|mate)\s+(-?\d+)[^\r\n]*\r?\n")

# Seconds to wait for "quit" to take effect before killing the process
_QUIT_GRACE = 1.0


class UCIEngine:
    """One engine process speaking UCI.

    Example:
        engine = UCIEngine.start(config, TimeControl(move_time=0.1))
        try:
            reply = engine.request_move(board)
        finally:
            engine.shutdown()

    Or as a context manager:
        with UCIEngine.start(config, time_control) as engine:
            reply = engine.request_move(board)
    """

    def __init__(
        self,
        command: str | Path,
        args: list[str] | None = None,
        *,
        label: str = "engine",
        time_control: TimeControl | None = None,
        options: dict[str, Any] | None = None,
        working_dir: str | Path | None = None,
        handshake_timeout: float = 10.0,
    ) -> None:
        """Describe an engine process without starting it.

        Args:
            command: Engine executable.
            args: Extra command-line arguments for the executable.
            label: "candidate" or "baseline", used in logs and results.
            time_control: Search limits for every move.
            options: UCI options sent with ``setoption`` during the handshake.
            working_dir: Working directory for the process.
            handshake_timeout: Seconds allowed for uciok/readyok.
        """
        self.command = str(command)
        self.args = [str(a) for a in (args or [])]
        self._label = label
        self.time_control = time_control or TimeControl(move_time=1.0)
        self.options = dict(options or {})
        self.working_dir = str(working_dir) if working_dir else None
        self.handshake_timeout = handshake_timeout

        self.state = EngineState.NOT_STARTED
        self.engine_name: str | None = None
        self._child: pexpect.spawn | None = None
        self._lock = threading.Lock()

    @classmethod
    def start(
        cls, config: "EngineConfig", time_control: TimeControl
    ) -> "UCIEngine":
        """Spawn the engine described by ``config`` and run the handshake.

        Raises:
            SpawnFailure: If the process cannot be launched or never
                completes the UCI handshake.
        """
        engine = cls(
            config.command,
            config.args,
            label=config.label,
            time_control=time_control,
            options=config.options,
            working_dir=config.working_dir,
            handshake_timeout=config.handshake_timeout,
        )
        engine.launch()
        return engine

    @property
    def label(self) -> str:
        return self._label

    @property
    def name(self) -> str:
        """Engine name from ``id name``, falling back to the executable."""
        return self.engine_name or Path(self.command).name

    @property
    def pid(self) -> int | None:
        return self._child.pid if self._child is not None else None

    @property
    def is_alive(self) -> bool:
        return self._child is not None and self._child.isalive()

    def launch(self) -> None:
        """Start the process and perform the UCI handshake."""
        if self.state is not EngineState.NOT_STARTED:
            raise SpawnFailure(
                f"{self.label}: engine already started ({self.state.value})",
                label=self.label,
            )

        path = Path(self.command)
        if path.parent != Path(".") and not path.exists():
            self.state = EngineState.TERMINATED
            raise SpawnFailure(
                f"{self.label}: engine binary not found: {path}", label=self.label
            )

        logger.debug(f"Starting {self.label} engine: {self.command} {' '.join(self.args)}")
        try:
            self._child = pexpect.spawn(
                self.command,
                self.args,
                cwd=self.working_dir,
                encoding="utf-8",
                echo=False,
                timeout=self.handshake_timeout,
            )
        except (pexpect.ExceptionPexpect, OSError) as e:
            self.state = EngineState.TERMINATED
            raise SpawnFailure(
                f"{self.label}: failed to launch {self.command}: {e}", label=self.label
            ) from e

        try:
            self._send("uci")
            self._expect_handshake(r"uciok")
            for name, value in self.options.items():
                self._send(f"setoption name {name} value {_option_value(value)}")
            self._send("isready")
            self._expect_handshake(r"readyok")
        except SpawnFailure:
            self.shutdown()
            raise

        self.state = EngineState.READY
        logger.debug(f"{self.label} engine ready: {self.name} (pid {self.pid})")

    def _expect_handshake(self, pattern: str) -> None:
        assert self._child is not None
        try:
            self._child.expect(pattern, timeout=self.handshake_timeout)
        except pexpect.TIMEOUT as e:
            raise SpawnFailure(
                f"{self.label}: timeout waiting for '{pattern}'", label=self.label
            ) from e
        except pexpect.EOF as e:
            raise SpawnFailure(
                f"{self.label}: process exited during handshake", label=self.label
            ) from e

        # "id name" arrives before uciok
        match = re.search(r"id name ([^\r\n]+)", self._child.before or "")
        if match:
            self.engine_name = match.group(1).strip()

    def _send(self, command: str) -> None:
        if self._child is None:
            raise EngineCrash(f"{self.label}: engine not running", label=self.label)
        logger.trace(f"{self.label} <- {command}")
        try:
            self._child.sendline(command)
        except OSError as e:
            self.state = EngineState.CRASHED
            raise EngineCrash(
                f"{self.label}: write to engine failed: {e}", label=self.label
            ) from e

    def request_move(self, board: chess.Board, clock: GameClock | None = None) -> MoveReply:
        """Search the given position and return the engine's move.

        The position is sent as the root FEN plus the moves played since, so
        the engine sees the same repetition history as the referee.

        Raises:
            EngineTimeout: No bestmove before the deadline.
            EngineCrash: The process exited.
            IllegalResponse: The bestmove token is not a UCI move.
        """
        with self._lock:
            if self.state is not EngineState.READY:
                raise EngineCrash(
                    f"{self.label}: engine not ready ({self.state.value})",
                    label=self.label,
                )
            assert self._child is not None

            root = board.root()
            position = f"position fen {root.fen()}"
            if board.move_stack:
                position += " moves " + " ".join(m.uci() for m in board.move_stack)
            self._send(position)

            deadline = self.time_control.deadline(board.turn, clock)
            self.state = EngineState.BUSY
            started = time.monotonic()
            self._send(self.time_control.go_command(clock))

            score_cp: int | None = None
            mate: int | None = None
            while True:
                remaining = deadline - (time.monotonic() - started)
                if remaining <= 0:
                    raise EngineTimeout(
                        f"{self.label}: no move within {deadline:.3f}s", label=self.label
                    )
                try:
                    index = self._child.expect([_INFO_SCORE, _BESTMOVE], timeout=remaining)
                except pexpect.TIMEOUT as e:
                    raise EngineTimeout(
                        f"{self.label}: no move within {deadline:.3f}s", label=self.label
                    ) from e
                except pexpect.EOF as e:
                    self.state = EngineState.CRASHED
                    raise EngineCrash(
                        f"{self.label}: engine process terminated unexpectedly",
                        label=self.label,
                    ) from e

                match = self._child.match
                if index == 0:
                    if match.group(1) == "cp":
                        score_cp, mate = int(match.group(2)), None
                    else:
                        score_cp, mate = None, int(match.group(2))
                    continue

                elapsed = time.monotonic() - started
                token = match.group(1)
                logger.trace(f"{self.label} -> bestmove {token} ({elapsed:.3f}s)")
                break

            self.state = EngineState.READY
            return MoveReply(
                move=self._parse_move(token),
                score_cp=score_cp,
                mate=mate,
                elapsed=elapsed,
            )

    def _parse_move(self, token: str) -> chess.Move:
        if token in ("(none)", "0000"):
            raise IllegalResponse(
                f"{self.label}: engine returned no move ({token})", label=self.label
            )
        try:
            return chess.Move.from_uci(token)
        except ValueError as e:
            raise IllegalResponse(
                f"{self.label}: malformed bestmove '{token}'", label=self.label
            ) from e

    def shutdown(self) -> None:
        """Stop the engine process. Safe to call repeatedly."""
        child = self._child
        if child is None:
            if self.state is not EngineState.NOT_STARTED:
                self.state = EngineState.TERMINATED
            return
        self._child = None

        try:
            if child.isalive():
                try:
                    child.sendline("quit")
                    child.expect(pexpect.EOF, timeout=_QUIT_GRACE)
                except (pexpect.TIMEOUT, pexpect.EOF, OSError):
                    pass
            child.close(force=True)
        except pexpect.ExceptionPexpect as e:
            logger.warning(f"{self.label}: failed to terminate engine process: {e}")
        finally:
            self.state = EngineState.TERMINATED
            logger.debug(f"{self.label} engine terminated")

    def __enter__(self) -> "UCIEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"UCIEngine(label={self.label!r}, command={self.command!r}, state={self.state.value})"


def _option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
