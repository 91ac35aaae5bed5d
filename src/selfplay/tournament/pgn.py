"""Incremental PGN output."""

import threading
from pathlib import Path

from loguru import logger

from selfplay.tournament.game_runner import GameResult


class PGNWriter:
    """Appends games to a PGN file as they finish.

    Workers finish games concurrently, so writes are serialized and flushed
    one game at a time; an interrupted run keeps every completed game.
    """

    def __init__(
        self,
        path: str | Path,
        candidate_name: str = "candidate",
        baseline_name: str = "baseline",
        event: str = "SPRT Tournament",
    ) -> None:
        self.path = Path(path)
        self.candidate_name = candidate_name
        self.baseline_name = baseline_name
        self.event = event
        self.game_count = 0
        self._file = None
        self._lock = threading.Lock()

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w")
        logger.info(f"PGN output: {self.path}")

    def write_game(self, game: GameResult) -> None:
        """Write a single game and flush."""
        pgn = game.to_pgn(
            candidate_name=self.candidate_name,
            baseline_name=self.baseline_name,
            event=self.event,
        )
        with self._lock:
            if self._file is None:
                return
            self._file.write(pgn)
            self._file.write("\n")
            self._file.flush()
            self.game_count += 1

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
                logger.info(f"Saved {self.game_count} games to {self.path}")

    def __enter__(self) -> "PGNWriter":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
