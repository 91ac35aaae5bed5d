"""Tests for opening book loading."""

import chess
import pytest

from selfplay.tournament.openings import load_openings

EPD = """\
# Sample book
rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - hmvc 0; fmvn 1;
rnbqkbnr/pppppppp/8/8/3P4/8/PPP1PPPP/RNBQKBNR b KQkq -
not an epd line
"""

PGN = """\
[Event "a"]

1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Ba4 Nf6 5. O-O *

[Event "b"]

1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Ba4 Nf6 5. d3 *

[Event "c"]

1. d4 d5 *
"""


class TestLoadOpenings:
    """Tests for the supported book formats."""

    def test_epd(self, tmp_path) -> None:
        path = tmp_path / "book.epd"
        path.write_text(EPD)

        openings = load_openings(path, shuffle=False)

        assert len(openings) == 2
        assert openings[0].startswith("rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq")
        for fen in openings:
            assert chess.Board(fen).is_valid()

    def test_fen(self, tmp_path) -> None:
        path = tmp_path / "book.fen"
        path.write_text(f"{chess.STARTING_FEN}\n\n8/8/8/4k3/8/8/8/4K3 w - - 0 1\nbad fen\n")

        openings = load_openings(path, shuffle=False)

        assert openings == [chess.STARTING_FEN, "8/8/8/4k3/8/8/8/4K3 w - - 0 1"]

    def test_pgn_plies_and_dedup(self, tmp_path) -> None:
        path = tmp_path / "book.pgn"
        path.write_text(PGN)

        openings = load_openings(path, shuffle=False, pgn_plies=8)

        # The first two games share their first eight plies
        assert len(openings) == 2
        ruy_lopez = chess.Board()
        for san in ["e4", "e5", "Nf3", "Nc6", "Bb5", "a6", "Ba4", "Nf6"]:
            ruy_lopez.push_san(san)
        assert openings[0] == ruy_lopez.fen()

    def test_shuffle_is_seeded(self, tmp_path) -> None:
        path = tmp_path / "book.fen"
        board = chess.Board()
        fens = []
        for move in list(board.legal_moves)[:12]:
            board.push(move)
            fens.append(board.fen())
            board.pop()
        path.write_text("\n".join(fens))

        first = load_openings(path, seed=7)
        second = load_openings(path, seed=7)

        assert first == second
        assert sorted(first) == sorted(fens)

    def test_max_openings(self, tmp_path) -> None:
        path = tmp_path / "book.epd"
        path.write_text(EPD)
        assert len(load_openings(path, shuffle=False, max_openings=1)) == 1

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_openings(tmp_path / "missing.epd")

    def test_unsupported_format(self, tmp_path) -> None:
        path = tmp_path / "book.txt"
        path.write_text(chess.STARTING_FEN)
        with pytest.raises(ValueError, match="Unsupported"):
            load_openings(path)

    def test_empty_book(self, tmp_path) -> None:
        path = tmp_path / "book.epd"
        path.write_text("# nothing here\n")
        with pytest.raises(ValueError, match="No usable positions"):
            load_openings(path)
