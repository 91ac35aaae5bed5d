"""Command-line interface for selfplay."""

import math
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from selfplay import __version__
from selfplay.errors import ConfigurationError, SpawnFailure
from selfplay.tournament.aggregator import RunningStatistics
from selfplay.tournament.game_runner import GameResult, Termination
from selfplay.tournament.openings import load_openings
from selfplay.tournament.orchestrator import Tournament, TournamentReport
from selfplay.tournament.pgn import PGNWriter
from selfplay.tournament.sprt import SPRT, SPRTConfig, SPRTResult, Verdict
from selfplay.utils.config import load_tournament_config
from selfplay.utils.logging import setup_logging

app = typer.Typer(
    name="selfplay",
    help="SPRT self-play testing for UCI chess engines",
    add_completion=False,
)
console = Console()

_VERDICT_COLOR = {
    Verdict.CONTINUE: "yellow",
    Verdict.ACCEPT_H1: "green",
    Verdict.ACCEPT_H0: "red",
}


def _fmt_elo(value: float) -> str:
    return f"{value:+.1f}" if math.isfinite(value) else ("+inf" if value > 0 else "-inf")


def create_status_table(
    result: SPRTResult,
    terminations: dict[Termination, int] | None = None,
    title: str = "SPRT Status",
) -> Table:
    """Create a rich table showing the SPRT state."""
    table = Table(title=title, show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Games", str(result.games))
    table.add_row("Wins", f"{result.wins} ({result.win_rate:.1%})")
    table.add_row("Draws", f"{result.draws} ({result.draw_rate:.1%})")
    table.add_row("Losses", f"{result.losses} ({result.loss_rate:.1%})")
    table.add_row("", "")

    table.add_row("Score", f"{result.score:.3f}")
    table.add_row(
        "Elo",
        f"{_fmt_elo(result.elo_estimate)} "
        f"[{_fmt_elo(result.elo_lower)}, {_fmt_elo(result.elo_upper)}] (95%)",
    )

    llr_color = "green" if result.llr > 0 else "red" if result.llr < 0 else "yellow"
    table.add_row(
        "LLR",
        f"[{llr_color}]{result.llr:.3f}[/{llr_color}] "
        f"([{result.lower_bound:.3f}, {result.upper_bound:.3f}])",
    )

    color = _VERDICT_COLOR[result.verdict]
    table.add_row("Verdict", f"[{color}]{result.verdict.value}[/{color}]")

    if terminations:
        table.add_row("", "")
        for termination, count in sorted(terminations.items(), key=lambda kv: -kv[1]):
            table.add_row(termination.value, str(count))

    return table


def print_conclusion(report: TournamentReport, config: SPRTConfig) -> None:
    decision = report.decision
    if report.verdict is Verdict.ACCEPT_H1:
        console.print(
            f"\n[bold green]H1 accepted:[/bold green] candidate is consistent with "
            f"elo1={config.elo1:+g} rather than elo0={config.elo0:+g}"
        )
    elif report.verdict is Verdict.ACCEPT_H0:
        console.print(
            f"\n[bold red]H0 accepted:[/bold red] candidate is consistent with "
            f"elo0={config.elo0:+g} rather than elo1={config.elo1:+g}"
        )
    else:
        console.print(
            "\n[bold yellow]Inconclusive:[/bold yellow] "
            "max games reached without crossing an SPRT bound"
        )

    if report.games_played > decision.games:
        console.print(
            f"[dim]{report.games_played - decision.games} in-flight games finished after "
            f"the decision (final W/D/L {report.statistics.wins}/"
            f"{report.statistics.draws}/{report.statistics.losses})[/dim]"
        )


@app.command()
def version() -> None:
    """Print version information."""
    console.print(f"[bold blue]selfplay[/bold blue] v{__version__}")


@app.command()
def run(
    config: Path = typer.Argument(..., help="Tournament YAML configuration"),
    overrides: list[str] = typer.Argument(None, help="Overrides such as sprt.elo1=5"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Play the candidate against the baseline until the SPRT decides."""
    try:
        cfg = load_tournament_config(config, overrides or [])
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(code=2) from e

    setup_logging("DEBUG" if verbose else cfg.logging.level, cfg.logging.log_file)

    openings: list[str] = []
    if cfg.openings.path:
        try:
            openings = load_openings(
                cfg.openings.path,
                shuffle=cfg.openings.shuffle,
                seed=cfg.openings.seed,
                max_openings=cfg.openings.max_openings,
            )
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[bold red]Configuration error:[/bold red] {e}")
            raise typer.Exit(code=2) from e

    pgn_writer: PGNWriter | None = None
    if cfg.output.pgn_path:
        pgn_writer = PGNWriter(
            cfg.output.pgn_path,
            candidate_name=Path(cfg.candidate.command).name,
            baseline_name=Path(cfg.baseline.command).name,
            event=cfg.output.event,
        )
        try:
            pgn_writer.open()
        except OSError as e:
            console.print(f"[bold red]Output error:[/bold red] {e}")
            raise typer.Exit(code=1) from e

    def on_result(game: GameResult, _: SPRTResult) -> None:
        if pgn_writer is not None:
            pgn_writer.write_game(game)

    console.print(
        f"\n[bold]SPRT: {cfg.candidate.command} (candidate) vs "
        f"{cfg.baseline.command} (baseline)[/bold]\n"
    )

    tournament = Tournament(cfg, openings=openings, on_result=on_result)
    try:
        report = tournament.run()
    except SpawnFailure as e:
        console.print(f"[bold red]Engine failed to start:[/bold red] {e}")
        raise typer.Exit(code=2) from e
    except OSError as e:
        console.print(f"[bold red]Output error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        if pgn_writer is not None:
            pgn_writer.close()

    console.print(
        Panel.fit(
            create_status_table(report.decision, report.terminations),
            title="[bold]Final Results[/bold]",
        )
    )
    print_conclusion(report, cfg.sprt)
    logger.info(f"Tournament finished: {report.verdict.value} ({report.stop_reason})")


@app.command()
def llr(
    wins: int = typer.Argument(..., min=0),
    draws: int = typer.Argument(..., min=0),
    losses: int = typer.Argument(..., min=0),
    elo0: float = typer.Option(0.0, help="Elo difference under H0"),
    elo1: float = typer.Option(10.0, help="Elo difference under H1"),
    alpha: float = typer.Option(0.05, help="False positive rate"),
    beta: float = typer.Option(0.05, help="False negative rate"),
) -> None:
    """Evaluate the SPRT for a given win/draw/loss record."""
    try:
        sprt = SPRT(SPRTConfig(elo0=elo0, elo1=elo1, alpha=alpha, beta=beta))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(code=2) from e

    result = sprt.evaluate(RunningStatistics(wins=wins, draws=draws, losses=losses))
    console.print(create_status_table(result))


if __name__ == "__main__":
    app()
