"""CLI entry point for pixeldrift."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pixeldrift.errors import ConfigurationError, DiscoveryError
from pixeldrift.models.config import PageShotsConfig, RunConfig
from pixeldrift.models.result import ComparisonStatus, RunSummary
from pixeldrift.orchestrator import Orchestrator

console = Console()

STATUS_STYLES = {
    ComparisonStatus.PASSED: "green",
    ComparisonStatus.FAILED: "red",
    ComparisonStatus.NEW_BASELINE_CREATED: "blue",
    ComparisonStatus.BASELINE_MISSING: "yellow",
    ComparisonStatus.ERROR: "red",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(path: str, **overrides) -> RunConfig:
    """Load and validate the config file, exiting with field-level errors on failure."""
    try:
        cfg = RunConfig.load(path)
        if overrides:
            cfg = RunConfig(**{**cfg.model_dump(), **overrides})
        return cfg
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {path}[/red]")
        console.print("Run 'pixeldrift init' to create a default config.")
        sys.exit(1)
    except ValidationError as e:
        for err in e.errors():
            field_path = ".".join(str(p) for p in err["loc"]) or "<root>"
            console.print(f"[red]Configuration error:[/red] path={field_path} message={err['msg']}")
        sys.exit(1)


def print_summary(summary: RunSummary) -> None:
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", summary.run_id)
    table.add_row("Duration", f"{summary.duration_seconds}s")
    table.add_row("Total Shots", str(summary.total))
    for status, style in STATUS_STYLES.items():
        table.add_row(status.value.replace("_", " ").title(), f"[{style}]{summary.count(status)}[/{style}]")
    if summary.report_id:
        table.add_row("Report", summary.report_id)
    console.print(table)

    for r in summary.failures:
        style = STATUS_STYLES[r.status]
        console.print(f"  [{style}]{r.status.value}[/{style}] {r.target_key}: {r.message}")
        if r.diff_image_path:
            console.print(f"    diff: [blue]{r.diff_image_path}[/blue]")
    if summary.report_incomplete:
        console.print("[yellow]Platform report is incomplete (upload failures)[/yellow]")


def _run(cfg: RunConfig) -> None:
    orchestrator = Orchestrator(cfg)
    try:
        summary = orchestrator.run()
    except (ConfigurationError, DiscoveryError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    status = "[bold green]Run Passed[/bold green]" if summary.passed else "[bold red]Run Failed[/bold red]"
    console.print(f"\n{status}")
    print_summary(summary)
    sys.exit(orchestrator.exit_code(summary))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression runner: capture shots and compare them against baselines."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="pixeldrift.json", help="Config file path")
def run(config: str) -> None:
    """Capture all shots and compare them against the baselines."""
    _run(load_config(config))


@cli.command()
@click.option("--config", "-c", default="pixeldrift.json", help="Config file path")
def update(config: str) -> None:
    """Capture all shots and store missing baselines."""
    _run(load_config(config, mode="generate"))


@cli.command()
@click.option("--base-url", "-u", prompt="Base URL", help="URL of the running application")
def init(base_url: str) -> None:
    """Create a default configuration file."""
    config_path = Path("pixeldrift.json")
    if config_path.exists():
        if not click.confirm("pixeldrift.json already exists. Overwrite?"):
            return

    cfg = RunConfig(page_shots=PageShotsConfig(
        base_url=base_url,
        pages=[{"path": "/", "name": "home"}],
    ))
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nCreate the first baselines with:")
    console.print("  [blue]pixeldrift update[/blue]")
    console.print("\nThen check for visual changes with:")
    console.print("  [blue]pixeldrift run[/blue]")


if __name__ == "__main__":
    cli()
