"""CLI entry point.

Allows running the CLI as a module: python -m repo_harvester.cli
"""

from repo_harvester.cli import app

if __name__ == "__main__":
    app()
