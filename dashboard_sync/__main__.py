"""
Entry point for running dashboard_sync as a module.

Usage:
    python -m dashboard_sync --help
    python -m dashboard_sync auth
    python -m dashboard_sync sync --provider google-tasks
"""

from dashboard_sync.cli import cli

if __name__ == "__main__":
    cli()
