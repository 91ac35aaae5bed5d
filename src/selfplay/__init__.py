"""selfplay: SPRT self-play testing for UCI chess engines.

Plays a candidate build against a baseline build until a sequential
probability ratio test decides whether the candidate gained (or lost) Elo:

- `from selfplay.tournament import Tournament, SPRT, SPRTConfig`
- `from selfplay.engine import UCIEngine, TimeControl`
"""

__version__ = "0.1.0"
