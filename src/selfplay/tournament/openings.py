"""Opening book loader.

Supports EPD, PGN and plain FEN files. Every opening is played twice, once
with each color, so a book only needs to be varied, not balanced.

Common opening book sources:
- https://github.com/official-stockfish/books (Stockfish opening books)
- https://github.com/AndyGrant/openbench-books (OpenBench books)
"""

import random
from pathlib import Path

import chess
import chess.pgn
from loguru import logger


def load_openings(
    path: str | Path,
    *,
    shuffle: bool = True,
    seed: int | None = None,
    max_openings: int | None = None,
    pgn_plies: int = 8,
) -> list[str]:
    """Load opening positions from an EPD, PGN or FEN file.

    Args:
        path: Path to opening book file (.epd, .pgn or .fen).
        shuffle: Whether to randomize opening order.
        seed: Random seed for shuffling. None for random.
        max_openings: Maximum number of openings to keep. None for all.
        pgn_plies: Plies to play from each PGN game.

    Returns:
        List of FEN strings.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file format is not supported or holds no positions.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Opening book not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".epd":
        openings = _load_epd(path)
    elif suffix == ".pgn":
        openings = _load_pgn(path, pgn_plies)
    elif suffix == ".fen":
        openings = _load_fen(path)
    else:
        raise ValueError(
            f"Unsupported opening book format: {suffix}. "
            "Supported formats: .epd, .pgn, .fen"
        )

    if not openings:
        raise ValueError(f"No usable positions in opening book: {path}")

    logger.info(f"Loaded {len(openings)} openings from {path}")

    if shuffle:
        random.Random(seed).shuffle(openings)

    if max_openings is not None:
        openings = openings[:max_openings]

    return openings


def _book_lines(path: Path):
    with path.open() as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if line and not line.startswith("#"):
                yield line_num, line


def _load_epd(path: Path) -> list[str]:
    """Read EPD records, e.g. ``<pieces> w KQkq - hmvc 0; fmvn 1;``."""
    openings = []
    for line_num, line in _book_lines(path):
        try:
            board, _ = chess.Board.from_epd(line)
        except ValueError as e:
            logger.warning(f"Line {line_num}: failed to parse EPD: {e}")
            continue
        if board.is_valid():
            openings.append(board.fen())
        else:
            logger.warning(f"Line {line_num}: invalid position, skipping")
    return openings


def _load_fen(path: Path) -> list[str]:
    """One FEN per line."""
    openings = []
    for line_num, line in _book_lines(path):
        try:
            board = chess.Board(line)
        except ValueError as e:
            logger.warning(f"Line {line_num}: invalid FEN: {e}")
            continue
        openings.append(board.fen())
    return openings


def _load_pgn(path: Path, plies: int) -> list[str]:
    """Position after the first ``plies`` half-moves of every game, deduplicated."""
    openings = []
    seen: set[str] = set()

    with path.open() as f:
        while True:
            game = chess.pgn.read_game(f)
            if game is None:
                break
            if game.errors:
                logger.warning(f"Skipping PGN game with errors: {game.errors[0]}")
                continue

            board = game.board()
            for i, move in enumerate(game.mainline_moves()):
                if i >= plies:
                    break
                board.push(move)

            fen = board.fen()
            if fen not in seen:
                seen.add(fen)
                openings.append(fen)

    return openings
