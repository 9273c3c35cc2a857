"""Command-line interface for the tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import AppConfig, TrackerSettings, load_config, render_sample_config
from .errors import ConfigurationError
from .paths import get_config_path, get_db_path, get_log_path

app = typer.Typer(help="Automatic activity tracking into Toggl.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

ConfigOption = typer.Option(
    None, "--config", "-c", path_type=Path, help="Path to the TOML configuration file."
)
DbOption = typer.Option(
    None, "--db", path_type=Path, help="Location of the sample SQLite database."
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def _load(config_path: Optional[Path]) -> tuple[AppConfig, TrackerSettings]:
    try:
        config = load_config(config_path or get_config_path())
        return config, TrackerSettings.from_config(config)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _db_path(config: AppConfig, db_path: Optional[Path]) -> Path:
    return db_path or get_db_path(config.general.data_dir)


@app.command()
def run(config_path: Optional[Path] = ConfigOption, db_path: Optional[Path] = DbOption) -> None:
    """Run the sampling and analysis daemon until interrupted."""
    from .daemon import TrackerDaemon, build_pipeline, build_sampler

    config, settings = _load(config_path)
    handler = logging.FileHandler(get_log_path(config.general.data_dir))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)

    resolved_db = _db_path(config, db_path)
    daemon = TrackerDaemon(
        settings,
        sampler_factory=lambda: build_sampler(config, settings, resolved_db),
        pipeline_factory=lambda: build_pipeline(config, settings, resolved_db),
    )
    daemon.run_forever()


@app.command()
def sample(config_path: Optional[Path] = ConfigOption, db_path: Optional[Path] = DbOption) -> None:
    """Take a single sample now and print it."""
    from .daemon import build_sampler
    from .reporting import format_sample

    config, settings = _load(config_path)
    sampler = build_sampler(config, settings, _db_path(config, db_path))
    try:
        collected = sampler.sample_once()
    finally:
        sampler.close()
    if collected is None:
        typer.echo("No sample recorded (idle or window unavailable).")
        return
    typer.echo(format_sample(collected))


@app.command()
def analyze(
    config_path: Optional[Path] = ConfigOption,
    db_path: Optional[Path] = DbOption,
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Classify and match a project without writing to Toggl."
    ),
) -> None:
    """Run one analysis cycle over the stored samples."""
    from .daemon import build_pipeline
    from .reporting import format_estimate

    config, settings = _load(config_path)
    pipeline = build_pipeline(config, settings, _db_path(config, db_path))
    try:
        result = pipeline.run_cycle(dry_run=dry_run)
    finally:
        pipeline.close()
    if result is None:
        typer.echo("Nothing to analyze.")
        return
    typer.echo(format_estimate(result.estimate, result.project))
    if result.outcome is not None:
        typer.echo(f"Result:     {result.outcome.action.value} ({result.outcome.reason})")


@app.command()
def summary(
    minutes: float = typer.Option(15.0, "--minutes", min=1.0, help="Size of the recent window."),
    config_path: Optional[Path] = ConfigOption,
    db_path: Optional[Path] = DbOption,
) -> None:
    """Print the recent sample window and analysis results."""
    from .reporting import SummaryPrinter

    if db_path is None:
        if config_path is not None or get_config_path().exists():
            config, _ = _load(config_path)
            db_path = _db_path(config, None)
        else:
            db_path = get_db_path()
    SummaryPrinter(db_path=db_path).print_recent(minutes)


@app.command("init-config")
def init_config(
    path: Optional[Path] = typer.Option(
        None, "--path", path_type=Path, help="Where to write the configuration."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write a sample configuration file."""
    target = path or get_config_path()
    if target.exists() and not force:
        typer.echo(f"{target} already exists; use --force to overwrite.", err=True)
        raise typer.Exit(code=1)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_sample_config(), encoding="utf-8")
    typer.echo(f"Wrote sample configuration to {target}")
