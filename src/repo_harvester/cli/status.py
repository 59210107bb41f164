"""Status and reset commands.

Inspect and manage saved harvest checkpoints.
"""

from pathlib import Path

import typer

from repo_harvester.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
)
from repo_harvester.services.checkpoint_service import CheckpointService
from repo_harvester.services.dedup_service import DeduplicationService
from repo_harvester.storage.database import Database


@handle_errors
def status_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to harvest config YAML"
    ),
):
    """Show saved checkpoints and store totals."""
    config = load_config(config_path)

    with Database(config.storage.db_path) as database:
        checkpoints = CheckpointService(database).list_checkpoints()
        dedup = DeduplicationService(database)
        total = dedup.count_sub_records(include_ignored=True)
        actionable = dedup.count_sub_records(include_ignored=False)
        repositories = dedup.count_processed_entities()

    display_info(f"Store: {config.storage.db_path}")
    typer.echo(f"  Repositories processed: {repositories}")
    typer.echo(f"  E-mails stored: {total} ({actionable} actionable)")

    if not checkpoints:
        display_success("No interrupted runs.")
        return

    display_warning(f"\nResumable runs: {len(checkpoints)}")
    for checkpoint in checkpoints:
        window = checkpoint.current_sub_range
        position = window.label if window else "finished"
        typer.echo(
            f"  - {checkpoint.keyword}: window "
            f"{checkpoint.current_sub_range_index + 1}/{len(checkpoint.sub_ranges)} "
            f"({position}), repository {checkpoint.current_entity_index}, "
            f"{checkpoint.total_entities_found} found, "
            f"updated {checkpoint.last_updated.isoformat(timespec='seconds')}"
        )


@handle_errors
def reset_command(
    keyword: str = typer.Argument(..., help="Keyword whose checkpoint to delete"),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to harvest config YAML"
    ),
):
    """Delete a keyword's checkpoint so the next run starts over.

    Stored e-mails and processed repositories are kept.
    """
    config = load_config(config_path)

    with Database(config.storage.db_path) as database:
        deleted = CheckpointService(database).clear(keyword)

    if deleted:
        display_success(f"Checkpoint for '{keyword}' deleted.")
    else:
        display_warning(f"No checkpoint found for '{keyword}'.")
