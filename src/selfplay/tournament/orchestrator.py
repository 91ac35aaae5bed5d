"""Tournament orchestration: a worker pool that plays games until the SPRT stops.

Games run concurrently on a fixed-size thread pool. Every worker spawns its
own engine pair, plays one game, records it and evaluates the SPRT on the
snapshot its own update produced. Recording, evaluating and stopping happen
under one lock, so the first snapshot (in record order) that leaves the SPRT
bounds decides the test and no game is dispatched after it exists. Games
already in flight finish and are recorded, but they never change the decision.
"""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from loguru import logger
from tqdm import tqdm

from selfplay.engine.uci_engine import UCIEngine
from selfplay.tournament.aggregator import OutcomeAggregator, RunningStatistics
from selfplay.tournament.game_runner import (
    EngineFactory,
    GameResult,
    GameRunner,
    Termination,
    candidate_plays_white,
    opening_for,
)
from selfplay.tournament.sprt import SPRT, SPRTResult, Verdict

if TYPE_CHECKING:
    from selfplay.configs import TournamentConfig

ResultCallback = Callable[[GameResult, SPRTResult], None]


@dataclass(frozen=True)
class TournamentReport:
    """Final state of a tournament."""

    # SPRT state at the snapshot that ended the test; when max_games ran out
    # first, the state after the last game
    decision: SPRTResult

    # Every recorded game, including in-flight games that finished after the
    # decision
    statistics: RunningStatistics

    terminations: dict[Termination, int]
    stop_reason: str  # "verdict" or "max_games"

    @property
    def verdict(self) -> Verdict:
        return self.decision.verdict

    @property
    def games_played(self) -> int:
        return self.statistics.games

    @property
    def llr(self) -> float:
        return self.decision.llr

    @property
    def elo_estimate(self) -> float:
        return self.decision.elo_estimate

    @property
    def elo_interval(self) -> tuple[float, float]:
        return self.decision.elo_lower, self.decision.elo_upper


class Tournament:
    """Runs one SPRT tournament between a candidate and a baseline engine.

    A Tournament is single-use: create a new one for every run.
    """

    def __init__(
        self,
        config: "TournamentConfig",
        *,
        engine_factory: EngineFactory | None = None,
        openings: list[str] | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        """Initialize the tournament.

        Args:
            config: Validated tournament configuration.
            engine_factory: Starts an engine from its config and a time
                control. Defaults to ``UCIEngine.start``.
            openings: Opening FENs; each is played once with either color.
            on_result: Called from the worker thread after every recorded
                game, with the game and the SPRT state it produced.
        """
        self.config = config
        self.engine_factory = engine_factory or UCIEngine.start
        self.openings = list(openings or [])
        self.on_result = on_result

        self.sprt = SPRT(config.sprt)
        self.aggregator = OutcomeAggregator()

        self._decision: SPRTResult | None = None
        self._record_lock = threading.Lock()
        self._stop = threading.Event()
        self._started = False

    @property
    def decision(self) -> SPRTResult | None:
        with self._record_lock:
            return self._decision

    def preflight(self) -> None:
        """Start and stop both engines once.

        Raises:
            SpawnFailure: If either engine cannot be launched.
        """
        for engine_config in (self.config.candidate, self.config.baseline):
            engine = self.engine_factory(engine_config, self.config.time_control)
            try:
                logger.info(f"{engine_config.label}: {engine_config.command} started")
            finally:
                engine.shutdown()

    def _record(self, result: GameResult) -> SPRTResult:
        """Record a game and stop dispatch if its snapshot decides the test."""
        with self._record_lock:
            stats = self.aggregator.record(result)
            sprt_result = self.sprt.evaluate(stats)
            if sprt_result.finished and self._decision is None:
                self._decision = sprt_result
                self._stop.set()
                logger.info(
                    f"SPRT {sprt_result.verdict.value} after {sprt_result.games} games "
                    f"(LLR {sprt_result.llr:.3f})"
                )
        return sprt_result

    def _play(self, runner: GameRunner, game_index: int) -> GameResult:
        result = runner.play_fresh_game(
            self.engine_factory,
            self.config.candidate,
            self.config.baseline,
            opening_fen=opening_for(game_index, self.openings),
            candidate_white=candidate_plays_white(game_index),
            game_index=game_index,
        )

        sprt_result = self._record(result)
        if self.on_result is not None:
            self.on_result(result, sprt_result)
        return result

    def _may_dispatch(self, dispatched: int, in_flight: int, failed: bool) -> bool:
        max_games = self.config.max_games
        with self._record_lock:
            stopped = self._stop.is_set()
        return (
            not failed
            and not stopped
            and in_flight < self.config.concurrency
            and (max_games is None or dispatched < max_games)
        )

    def run(self) -> TournamentReport:
        """Play games until the SPRT decides or max_games is reached.

        Raises:
            SpawnFailure: If an engine cannot be started, either before the
                pool starts or while it runs (after in-flight games finish).
        """
        if self._started:
            raise RuntimeError("Tournament.run() can only be called once")
        self._started = True

        cfg = self.config
        logger.info(
            f"SPRT elo0={cfg.sprt.elo0} elo1={cfg.sprt.elo1} "
            f"alpha={cfg.sprt.alpha} beta={cfg.sprt.beta}, "
            f"LLR bounds [{self.sprt.lower_bound:.3f}, {self.sprt.upper_bound:.3f}]"
        )
        estimate = self.sprt.games_estimate()
        if estimate is not None:
            logger.info(f"Estimated games if elo1 holds: ~{estimate}")

        self.preflight()

        pending: set[Future] = set()
        dispatched = 0
        failure: BaseException | None = None

        pbar = tqdm(total=cfg.max_games, desc="Games", unit="game", disable=not cfg.progress)
        runner = GameRunner(cfg.game, cfg.time_control)
        try:
            with ThreadPoolExecutor(
                max_workers=cfg.concurrency, thread_name_prefix="game"
            ) as pool:
                while True:
                    while self._may_dispatch(dispatched, len(pending), failure is not None):
                        pending.add(pool.submit(self._play, runner, dispatched))
                        dispatched += 1

                    if not pending:
                        break

                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        try:
                            future.result()
                        except Exception as e:
                            # Protocol failures never get here; this is a
                            # spawn failure or a bug. Drain, then re-raise.
                            if failure is None:
                                logger.error(f"Stopping tournament: {e}")
                                failure = e
                            continue
                        pbar.update(1)

                    stats = self.aggregator.snapshot()
                    current = self.sprt.evaluate(stats)
                    pbar.set_postfix(
                        W=stats.wins,
                        D=stats.draws,
                        L=stats.losses,
                        elo=f"{current.elo_estimate:+.1f}",
                        llr=f"{current.llr:.2f}",
                    )
        finally:
            self._stop.set()
            pbar.close()
            runner.close()

        if failure is not None:
            raise failure

        statistics = self.aggregator.snapshot()
        decision = self.decision
        if decision is None:
            decision = self.sprt.evaluate(statistics)
            stop_reason = "max_games"
            logger.info(f"Max games ({cfg.max_games}) reached without a decision")
        else:
            stop_reason = "verdict"

        if statistics.games > decision.games:
            logger.info(
                f"{statistics.games - decision.games} in-flight games finished "
                "after the decision and were recorded"
            )

        return TournamentReport(
            decision=decision,
            statistics=statistics,
            terminations=self.aggregator.terminations(),
            stop_reason=stop_reason,
        )
