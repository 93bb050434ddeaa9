"""
dashboard_sync.utils - Utility module

Common utilities including logging configuration and path resolution.
"""

from dashboard_sync.utils.normalization import names_match, normalize_name
from dashboard_sync.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = ["normalize_name", "names_match", "resolve_config_dir", "DEFAULT_CONFIG_DIR"]
