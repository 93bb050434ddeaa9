"""Tests for path utilities."""

import os
from pathlib import Path

from dashboard_sync.utils.paths import (
    CONFIG_DIR_ENV_VAR,
    DEFAULT_CONFIG_DIR,
    resolve_config_dir,
    resolve_database_path,
)


class TestResolveConfigDir:
    """Test resolve_config_dir function."""

    def test_default_config_dir_is_in_home(self):
        """Default config dir should be in user's home directory."""
        assert Path.home() / ".dashboard-sync" == DEFAULT_CONFIG_DIR

    def test_explicit_path_string(self, tmp_path):
        """Explicit path string should be used."""
        assert resolve_config_dir(str(tmp_path)) == tmp_path.resolve()

    def test_explicit_path_with_tilde(self):
        """Explicit path with ~ should be expanded."""
        result = resolve_config_dir("~/custom-config")
        assert result == Path.home() / "custom-config"

    def test_env_var_override(self, tmp_path, monkeypatch):
        """Environment variable should be used when no explicit path is given."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path))
        assert resolve_config_dir(None) == tmp_path.resolve()

    def test_default_when_no_explicit_and_no_env(self, monkeypatch):
        """Default should be used when no explicit path and no env var."""
        monkeypatch.delenv(CONFIG_DIR_ENV_VAR, raising=False)
        result = resolve_config_dir(None)
        assert result == DEFAULT_CONFIG_DIR.expanduser().resolve()

    def test_explicit_overrides_env_var(self, tmp_path, monkeypatch):
        """Explicit path should override environment variable."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path / "env"))
        explicit = tmp_path / "explicit"

        assert resolve_config_dir(explicit) == explicit.resolve()

    def test_result_is_always_absolute(self, tmp_path):
        """Relative paths should resolve against the working directory."""
        original_cwd = os.getcwd()
        try:
            os.chdir(tmp_path)
            assert resolve_config_dir("relative-dir").is_absolute()
        finally:
            os.chdir(original_cwd)


class TestResolveDatabasePath:
    """Test resolve_database_path function."""

    def test_relative_file_goes_in_config_dir(self, tmp_path):
        """A bare file name should be placed in the config directory."""
        result = resolve_database_path(tmp_path, "dashboard.db")
        assert result == tmp_path / "dashboard.db"

    def test_absolute_file_is_kept(self, tmp_path):
        """An absolute database path should be used as-is."""
        target = tmp_path / "elsewhere" / "data.db"
        assert resolve_database_path(Path("/unused"), str(target)) == target
