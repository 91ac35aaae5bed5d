"""Exception hierarchy for self-play tournaments.

Two families matter to callers:

- ``SpawnFailure`` and ``ConfigurationError`` end a tournament before (or
  instead of) producing a verdict.
- ``ProtocolFailure`` subclasses are local to one game. The game runner
  converts them into a loss for the offending side; they never escape
  ``GameRunner.play_game``.
"""


class SelfPlayError(Exception):
    """Base class for all errors raised by selfplay."""

    pass


class ConfigurationError(SelfPlayError, ValueError):
    """Raised when tournament or SPRT parameters are invalid."""

    pass


class EngineError(SelfPlayError):
    """Raised when communication with an engine process fails."""

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class SpawnFailure(EngineError):
    """Raised when an engine executable cannot be launched or initialized."""

    pass


class ProtocolFailure(EngineError):
    """Raised when a running engine misbehaves during a game."""

    pass


class EngineTimeout(ProtocolFailure):
    """Raised when an engine misses its per-move deadline."""

    pass


class IllegalResponse(ProtocolFailure):
    """Raised when an engine answers with something that is not a move."""

    pass


class EngineCrash(ProtocolFailure):
    """Raised when an engine process exits unexpectedly."""

    pass
