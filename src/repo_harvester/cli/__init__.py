"""repo-harvester CLI Package.

Usage:
    python -m repo_harvester.cli run --config config/harvest_config.yaml
    python -m repo_harvester.cli status
    python -m repo_harvester.cli reset OPENROUTER
    python -m repo_harvester.cli export contributors.csv
    python -m repo_harvester.cli validate config/harvest_config.yaml
"""

import typer

from repo_harvester.cli.export import export_command
from repo_harvester.cli.run import run_command
from repo_harvester.cli.status import reset_command, status_command
from repo_harvester.cli.validate import validate_command

# Create main app
app = typer.Typer(help="Harvest GitHub contributor e-mails by keyword, resumably")

# Register individual commands
app.command(name="run")(run_command)
app.command(name="status")(status_command)
app.command(name="reset")(reset_command)
app.command(name="export")(export_command)
app.command(name="validate")(validate_command)

__all__ = [
    "app",
    "run_command",
    "status_command",
    "reset_command",
    "export_command",
    "validate_command",
]
