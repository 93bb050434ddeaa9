"""CLI package for dashboard_sync."""

from dashboard_sync.cli.main import build_manager, cli, get_config_dir

__all__ = [
    "build_manager",
    "cli",
    "get_config_dir",
]
