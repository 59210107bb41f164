"""Validate command for configuration files."""

from pathlib import Path

import typer

from repo_harvester.cli.utils import display_error, display_success, handle_errors
from repo_harvester.services.config_manager import ConfigManager


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        config = manager.load_config()
        display_success("Configuration is valid!")
        typer.echo(f"  Keyword: {config.search.keyword}")
        typer.echo(f"  Period: {config.search.start_date} .. {config.search.end_date or 'today'}")
        typer.echo(f"  Authenticated: {'yes' if config.github.token else 'no'}")
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)
