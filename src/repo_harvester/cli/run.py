"""Run command for the harvest pipeline.

Handles pipeline execution and result display.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from repo_harvester.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
)
from repo_harvester.models.checkpoint import RunState
from repo_harvester.models.search import SubRange
from repo_harvester.observability.metrics import get_metrics_text
from repo_harvester.orchestration import HarvestResult, plan_harvest, run_harvest


@handle_errors
def run_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to harvest config YAML",
    ),
    keyword: Optional[str] = typer.Option(
        None, "--keyword", "-k", help="Override the configured search keyword"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Probe and print the window plan without harvesting"
    ),
    fresh: bool = typer.Option(
        False, "--fresh", help="Discard any saved checkpoint and start over"
    ),
    metrics_out: Optional[Path] = typer.Option(
        None, "--metrics-out", help="Write Prometheus metrics to this file"
    ),
):
    """Harvest contributor e-mails for a keyword, resuming if interrupted."""
    # 1. Load Config
    config = load_config(config_path)
    effective_keyword = keyword or config.search.keyword

    if dry_run:
        display_info(f"Planning windows for '{effective_keyword}'...")
        windows = asyncio.run(plan_harvest(config, keyword=keyword))
        _display_plan(windows)
        _write_metrics(metrics_out)
        return

    # 2. Execute pipeline
    display_info(f"Starting harvest for '{effective_keyword}'...")
    if fresh:
        display_warning("Ignoring any saved checkpoint (--fresh)")

    try:
        result = asyncio.run(run_harvest(config, keyword=keyword, fresh=fresh))
    finally:
        _write_metrics(metrics_out)

    _display_results(result)


def _display_plan(windows: List[SubRange]) -> None:
    display_success(f"Dry run: {len(windows)} windows planned.")
    for window in windows:
        marker = " (truncated)" if window.truncated else ""
        typer.echo(f" - {window.label} [{window.days}d]{marker}")


def _display_results(result: HarvestResult) -> None:
    """Display harvest results.

    Args:
        result: HarvestResult from pipeline execution.
    """
    typer.echo("")
    if result.state == RunState.PAUSED:
        typer.secho(
            "Harvest paused (per-run limit reached); run again to continue.",
            fg=typer.colors.YELLOW,
            bold=True,
        )
    else:
        typer.secho("Harvest completed!", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  Keyword: {result.keyword}")
    typer.echo(
        f"  Windows: {result.sub_ranges_total} "
        f"(fetched {result.sub_ranges_fetched}, split {result.sub_ranges_split}, "
        f"skipped {result.sub_ranges_skipped})"
    )
    typer.echo(f"  Repositories found: {result.entities_found}")
    typer.echo(f"  Repositories processed: {result.entities_processed}")
    typer.echo(f"  Repositories already done: {result.entities_skipped}")
    typer.echo(f"  Repositories failed: {result.entities_failed}")
    typer.echo(f"  New e-mails stored: {result.sub_records_inserted}")
    typer.echo(f"  Unique contributors seen: {result.unique_contributors}")
    typer.echo(f"  Duration: {result.duration_seconds:.1f}s")

    if result.top_contributors:
        typer.echo("\nTop contributors:")
        for rank, entry in enumerate(result.top_contributors, start=1):
            flag = " [ignored]" if entry["ignored"] else ""
            typer.echo(
                f"  {rank}. {entry['identity']} - {entry['commits']} commits "
                f"in {entry['repositories']} repos{flag}"
            )

    if result.errors:
        display_warning(f"\nErrors: {len(result.errors)}")
        for err in result.errors:
            typer.echo(f"  - {err}")


def _write_metrics(path: Optional[Path]) -> None:
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(get_metrics_text())
    display_info(f"Metrics written to {path}")
