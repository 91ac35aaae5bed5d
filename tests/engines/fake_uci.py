"""Scripted UCI engine for adapter tests.

Usage: python fake_uci.py MODE

Modes:
    play     answer every "go" with the first legal move (sorted by UCI)
    stall    never answer "go"
    crash    exit as soon as "go" arrives
    garbage  answer "go" with an unparseable bestmove
    resign   like play, but report a hopeless score
    mute     never answer "uci"
"""

import sys

import chess


def send(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def main() -> None:
    mode = sys.argv[1] if len(sys.argv) > 1 else "play"
    board = chess.Board()

    while True:
        line = sys.stdin.readline()
        if not line:
            return
        tokens = line.split()
        if not tokens:
            continue
        command = tokens[0]

        if command == "uci":
            if mode == "mute":
                continue
            send(f"id name Fake {mode}")
            send("id author tests")
            send("uciok")
        elif command == "isready":
            send("readyok")
        elif command == "position":
            if "fen" in tokens:
                start = tokens.index("fen") + 1
                end = tokens.index("moves") if "moves" in tokens else len(tokens)
                board = chess.Board(" ".join(tokens[start:end]))
            else:
                board = chess.Board()
            if "moves" in tokens:
                for uci in tokens[tokens.index("moves") + 1:]:
                    board.push_uci(uci)
        elif command == "go":
            if mode == "stall":
                continue
            if mode == "crash":
                sys.exit(3)
            if mode == "garbage":
                send("bestmove zz99")
                continue
            move = sorted(board.legal_moves, key=lambda m: m.uci())[0]
            score = "cp -2000" if mode == "resign" else "cp 15"
            send(f"info depth 1 score {score} nodes 1 pv {move.uci()}")
            send(f"bestmove {move.uci()}")
        elif command == "quit":
            return


if __name__ == "__main__":
    main()
