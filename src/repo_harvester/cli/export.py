"""Export command: write stored contributor records to CSV."""

import csv
from pathlib import Path
from typing import Optional

import typer

from repo_harvester.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_success,
    handle_errors,
    load_config,
    logger,
)
from repo_harvester.services.dedup_service import DeduplicationService
from repo_harvester.storage.database import Database

EXPORT_COLUMNS = [
    "email",
    "name",
    "repository",
    "keyword",
    "commits",
    "last_seen",
    "ignored",
]


@handle_errors
def export_command(
    output: Path = typer.Argument(..., help="CSV file to write"),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to harvest config YAML"
    ),
    keyword: Optional[str] = typer.Option(
        None, "--keyword", "-k", help="Only records found for this keyword"
    ),
    include_ignored: bool = typer.Option(
        False, "--include-ignored", help="Also export noreply and malformed addresses"
    ),
):
    """Export contributor e-mails for outreach."""
    config = load_config(config_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    rows = 0
    with Database(config.storage.db_path) as database:
        dedup = DeduplicationService(database)
        with open(output, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(EXPORT_COLUMNS)
            for record in dedup.iter_sub_records(
                keyword=keyword, include_ignored=include_ignored
            ):
                writer.writerow(
                    [
                        record.identity,
                        record.display_name or "",
                        record.owning_entity,
                        record.keyword or "",
                        record.occurrence_count,
                        record.last_seen.isoformat() if record.last_seen else "",
                        int(record.ignored),
                    ]
                )
                rows += 1

    logger.info("records_exported", path=str(output), rows=rows, keyword=keyword)
    display_success(f"Exported {rows} records to {output}")
