"""Sequential Probability Ratio Test (SPRT) for engine-vs-engine matches.

SPRT decides, game by game, between two hypotheses about the Elo
difference between the candidate and the baseline:

- H0: The Elo difference is elo0
- H1: The Elo difference is elo1

Gain tests use something like elo0=0, elo1=10. Regression tests use bounds
at or below zero, e.g. elo0=-10, elo1=0. Both run through the same code.

Each game is modelled as a trinomial (win, draw, loss). Under each
hypothesis the draw probability is the estimated draw ratio, and the win and
loss probabilities are chosen so that the expected score equals the score
implied by that hypothesis' Elo. The draw term then cancels and

    LLR = W * log(pw1 / pw0) + L * log(pl1 / pl0)

The test stops when the LLR leaves [log(beta / (1 - alpha)),
log((1 - beta) / alpha)].

The draw ratio is estimated as (D + k) / (N + 3k) with ``DRAW_PSEUDO_COUNT``
k per outcome, so a handful of games cannot produce an extreme estimate. It
is then capped at ``MAX_DRAW_FRACTION`` of the largest ratio both hypotheses
allow, which keeps every win and loss probability a fixed share away from
zero: a single decisive game moves the LLR by a bounded amount. Probabilities
are finally clamped to [floor, 1 - floor] before taking logarithms. The LLR
is a pure function of (config, W, D, L).

References:
- https://www.chessprogramming.org/Sequential_Probability_Ratio_Test
- https://tests.stockfishchess.org/sprt_calc
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from selfplay.errors import ConfigurationError
from selfplay.tournament.aggregator import RunningStatistics

# Smallest probability fed to a logarithm
PROBABILITY_FLOOR = 1e-6

# Two-sided 95% normal quantile for the Elo confidence interval
Z_95 = 1.959963984540054

# Elo reported for a perfect (or perfectly lost) score
ELO_CAP = 1000.0

# Pseudo-count added to each of win, draw and loss when estimating the draw ratio
DRAW_PSEUDO_COUNT = 0.5

# Share of the largest admissible draw ratio the estimate may reach
MAX_DRAW_FRACTION = 0.9

# Largest |elo0| or |elo1|; 10^(4000/400) odds are already meaningless
MAX_HYPOTHESIS_ELO = 4000.0


class Verdict(Enum):
    """Decision of the SPRT after a number of games."""

    CONTINUE = "continue"  # Test not yet conclusive
    ACCEPT_H0 = "H0_accepted"  # Elo difference is elo0
    ACCEPT_H1 = "H1_accepted"  # Elo difference is elo1


@dataclass(frozen=True)
class SPRTConfig:
    """Hypotheses and error rates of a test. Fixed for a whole run."""

    elo0: float = 0.0
    elo1: float = 10.0
    alpha: float = 0.05  # False positive rate (accept H1 when H0 holds)
    beta: float = 0.05  # False negative rate (accept H0 when H1 holds)

    def __post_init__(self) -> None:
        for name in ("elo0", "elo1"):
            value = getattr(self, name)
            if not math.isfinite(value) or abs(value) > MAX_HYPOTHESIS_ELO:
                raise ConfigurationError(
                    f"{name} must be within +/-{MAX_HYPOTHESIS_ELO:g}, got {value}"
                )
        if self.elo0 == self.elo1:
            raise ConfigurationError(f"elo0 and elo1 must differ, both are {self.elo0}")
        if not (0 < self.alpha < 1):
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")
        if not (0 < self.beta < 1):
            raise ConfigurationError(f"beta must be in (0, 1), got {self.beta}")
        if self.alpha + self.beta >= 1:
            raise ConfigurationError(
                f"alpha + beta must be below 1, got {self.alpha + self.beta}"
            )


class Trinomial(NamedTuple):
    """Win/draw/loss probabilities of a single game."""

    win: float
    draw: float
    loss: float

    @property
    def score(self) -> float:
        return self.win + self.draw / 2.0


@dataclass(frozen=True)
class SPRTResult:
    """State of the test for one statistics snapshot."""

    # Current log-likelihood ratio
    llr: float

    # LLR bounds for decision making
    lower_bound: float  # Cross this → accept H0
    upper_bound: float  # Cross this → accept H1

    # Game statistics (candidate's perspective)
    games: int
    wins: int
    draws: int
    losses: int

    # Derived statistics
    score: float  # (wins + draws/2) / games
    elo_estimate: float
    elo_lower: float  # 95% confidence interval
    elo_upper: float

    verdict: Verdict

    @property
    def elo_error(self) -> float:
        """Half-width of the 95% confidence interval."""
        return (self.elo_upper - self.elo_lower) / 2.0

    @property
    def finished(self) -> bool:
        return self.verdict is not Verdict.CONTINUE

    @property
    def win_rate(self) -> float:
        return self.wins / self.games if self.games > 0 else 0.0

    @property
    def draw_rate(self) -> float:
        return self.draws / self.games if self.games > 0 else 0.0

    @property
    def loss_rate(self) -> float:
        return self.losses / self.games if self.games > 0 else 0.0


class SPRT:
    """SPRT decision engine using the logistic Elo model.

    Holds no state besides its configuration, so ``evaluate`` can be called
    with any snapshot from any thread.

    Example:
        sprt = SPRT(SPRTConfig(elo0=0, elo1=10, alpha=0.05, beta=0.05))
        result = sprt.evaluate(RunningStatistics(wins=50, draws=105, losses=45))

        if result.verdict is Verdict.ACCEPT_H1:
            print("Candidate is stronger!")
    """

    def __init__(
        self,
        config: SPRTConfig,
        *,
        probability_floor: float = PROBABILITY_FLOOR,
        draw_pseudo_count: float = DRAW_PSEUDO_COUNT,
        max_draw_fraction: float = MAX_DRAW_FRACTION,
    ) -> None:
        if not (0 < probability_floor < 0.5):
            raise ConfigurationError(
                f"probability_floor must be in (0, 0.5), got {probability_floor}"
            )
        if draw_pseudo_count < 0:
            raise ConfigurationError(
                f"draw_pseudo_count must be >= 0, got {draw_pseudo_count}"
            )
        if not (0 < max_draw_fraction < 1):
            raise ConfigurationError(
                f"max_draw_fraction must be in (0, 1), got {max_draw_fraction}"
            )
        self.config = config
        self.probability_floor = probability_floor
        self.draw_pseudo_count = draw_pseudo_count
        self.max_draw_fraction = max_draw_fraction

        # Wald's bounds
        self.lower_bound = math.log(config.beta / (1 - config.alpha))
        self.upper_bound = math.log((1 - config.beta) / config.alpha)

        self.score0 = self.elo_to_score(config.elo0)
        self.score1 = self.elo_to_score(config.elo1)

    @staticmethod
    def elo_to_score(elo: float) -> float:
        """Expected score for an Elo difference: 1 / (1 + 10^(-elo/400))."""
        return 1.0 / (1.0 + math.pow(10.0, -elo / 400.0))

    @staticmethod
    def score_to_elo(score: float) -> float:
        """Inverse of ``elo_to_score``, capped at +/- ``ELO_CAP``."""
        if score <= 0.0:
            return -ELO_CAP
        if score >= 1.0:
            return ELO_CAP
        elo = -400.0 * math.log10(1.0 / score - 1.0)
        return max(-ELO_CAP, min(ELO_CAP, elo))

    def _clamp(self, p: float) -> float:
        return max(self.probability_floor, min(1.0 - self.probability_floor, p))

    def max_draw_ratio(self) -> float:
        """Largest draw probability used under either hypothesis.

        At 2 * min(s0, 1 - s0, s1, 1 - s1) one hypothesis would give a win or
        a loss zero probability; the cap stays ``max_draw_fraction`` of the
        way there.
        """
        tightest = min(self.score0, 1 - self.score0, self.score1, 1 - self.score1)
        return max(
            0.0,
            min(
                2.0 * tightest * self.max_draw_fraction,
                2.0 * (tightest - self.probability_floor),
            ),
        )

    def draw_ratio(self, stats: RunningStatistics) -> float:
        """Draw ratio estimate with ``draw_pseudo_count`` added to each outcome."""
        k = self.draw_pseudo_count
        if stats.games + 3 * k == 0:
            return 0.0
        return (stats.draws + k) / (stats.games + 3 * k)

    def trinomial(self, score: float, draw_ratio: float) -> Trinomial:
        """Trinomial with the given expected score and (capped) draw ratio."""
        draw = min(max(draw_ratio, 0.0), self.max_draw_ratio())
        return Trinomial(
            win=self._clamp(score - draw / 2.0),
            draw=self._clamp(draw),
            loss=self._clamp(1.0 - score - draw / 2.0),
        )

    def hypothesis_probabilities(
        self, stats: RunningStatistics
    ) -> tuple[Trinomial, Trinomial]:
        """Per-game outcome probabilities under H0 and H1 for ``stats``."""
        return (
            self.trinomial(self.score0, self.draw_ratio(stats)),
            self.trinomial(self.score1, self.draw_ratio(stats)),
        )

    def llr(self, stats: RunningStatistics) -> float:
        """Log-likelihood ratio of H1 against H0. Zero games give 0.0."""
        if stats.games == 0:
            return 0.0

        h0, h1 = self.hypothesis_probabilities(stats)
        return (
            stats.wins * math.log(h1.win / h0.win)
            + stats.draws * math.log(h1.draw / h0.draw)
            + stats.losses * math.log(h1.loss / h0.loss)
        )

    def verdict(self, llr: float, games: int) -> Verdict:
        if games == 0:
            return Verdict.CONTINUE
        if llr >= self.upper_bound:
            return Verdict.ACCEPT_H1
        if llr <= self.lower_bound:
            return Verdict.ACCEPT_H0
        return Verdict.CONTINUE

    def elo_interval(self, stats: RunningStatistics) -> tuple[float, float, float]:
        """Elo estimate with a 95% confidence interval.

        The standard error of the mean score comes from the trinomial sample
        variance and is mapped through the logistic curve, so the interval is
        asymmetric for lopsided scores.

        Returns:
            (estimate, lower, upper). Fewer than two games give an infinite
            interval.
        """
        if stats.games == 0:
            return 0.0, -math.inf, math.inf

        estimate = self.score_to_elo(stats.score)
        if stats.games < 2:
            return estimate, -math.inf, math.inf

        se = math.sqrt(stats.variance / stats.games)
        lower = self.score_to_elo(stats.score - Z_95 * se)
        upper = self.score_to_elo(stats.score + Z_95 * se)
        return estimate, lower, upper

    def evaluate(self, stats: RunningStatistics) -> SPRTResult:
        """Run the test on a statistics snapshot."""
        llr = self.llr(stats)
        estimate, lower, upper = self.elo_interval(stats)

        return SPRTResult(
            llr=llr,
            lower_bound=self.lower_bound,
            upper_bound=self.upper_bound,
            games=stats.games,
            wins=stats.wins,
            draws=stats.draws,
            losses=stats.losses,
            score=stats.score,
            elo_estimate=estimate,
            elo_lower=lower,
            elo_upper=upper,
            verdict=self.verdict(llr, stats.games),
        )

    def games_estimate(
        self, true_elo: float | None = None, draw_ratio: float = 0.0
    ) -> int | None:
        """Rough number of games before the test concludes.

        Uses Wald's approximation: the bound the LLR drifts towards divided
        by the expected LLR increment per game.

        Args:
            true_elo: Assumed real Elo difference. Defaults to elo1.
            draw_ratio: Assumed draw ratio.

        Returns:
            Estimated games, or None when the expected drift is ~0 (the true
            Elo sits between the hypotheses and the test may run very long).
        """
        if true_elo is None:
            true_elo = self.config.elo1

        truth = self.trinomial(self.elo_to_score(true_elo), draw_ratio)
        h0 = self.trinomial(self.score0, draw_ratio)
        h1 = self.trinomial(self.score1, draw_ratio)

        drift = truth.win * math.log(h1.win / h0.win) + truth.loss * math.log(
            h1.loss / h0.loss
        )
        if abs(drift) < 1e-9:
            return None

        bound = self.upper_bound if drift > 0 else self.lower_bound
        return math.ceil(bound / drift)
