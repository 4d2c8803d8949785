"""Command line interface for the radmon package."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer

from .instrument.runner import run as run_host
from .instrument.runner import table_app
from .plotting import plot_log
from .reporting import read_log_csv, summarize_log

app = typer.Typer(add_completion=False, context_settings={"help_option_names": ["-h", "--help"]})
log_app = typer.Typer(help="Exported dose log utilities.")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Radiation survey meter host utilities."""

    setup_logging(verbose)


@log_app.command("summary")
def log_summary(
    path: Path = typer.Argument(..., help="Exported radiation_log_*.csv", exists=True, readable=True),
) -> None:
    """Print entry counts and dose statistics for an exported log."""

    try:
        df = read_log_csv(path)
    except ValueError as exc:
        raise typer.BadParameter(f"Could not parse {path}: {exc}") from exc
    summary = summarize_log(df)
    typer.echo(f"Entries: {summary.entries}")
    typer.echo(f"Alarm entries: {summary.alarm_entries}")
    typer.echo(f"Max dose rate: {summary.max_dose_rate:.2f} mR/h")
    typer.echo(f"Mean dose rate: {summary.mean_dose_rate:.2f} mR/h")
    typer.echo(f"Final cumulative dose: {summary.final_cumulative_dose:.2f} mR")
    if summary.start is not None:
        typer.echo(f"Span: {summary.start} .. {summary.end}")


@log_app.command("plot")
def log_plot(
    path: Path = typer.Argument(..., help="Exported radiation_log_*.csv", exists=True, readable=True),
    out_dir: Path = typer.Option(Path("."), "--out", help="Directory for dose_log.png."),
) -> None:
    """Render dose rate and cumulative dose over time."""

    try:
        df = read_log_csv(path)
    except ValueError as exc:
        raise typer.BadParameter(f"Could not parse {path}: {exc}") from exc
    try:
        figure = plot_log(df, out_dir)
    except RuntimeError as exc:
        typer.echo(f"[warning] plotting skipped: {exc}")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Plot written to {figure}")


app.command("run")(run_host)
app.add_typer(table_app, name="table")
app.add_typer(log_app, name="log")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
