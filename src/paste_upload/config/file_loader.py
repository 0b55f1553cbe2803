"""File-based configuration loading with per-scope overrides.

Configuration lives in the project's ``pyproject.toml`` under
``[tool.paste_upload]`` and in a home file (``~/.config/paste_upload.toml`` or
the path in ``PASTE_UPLOAD_CONFIG_HOME``). Either file may carry per-scope
tables, typically keyed by editor language::

    [tool.paste_upload]
    destination = "s3"

    [tool.paste_upload.s3]
    bucket = "assets"

    [tool.paste_upload.scopes.markdown]
    multiple_files = "allow"
"""

import os
from pathlib import Path
import tomllib
from typing import Any

HOME_CONFIG_ENV = "PASTE_UPLOAD_CONFIG_HOME"
SCOPES_KEY = "scopes"


class ConfigFileError(Exception):
    """Raised when configuration file loading fails."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        """Initialize with file path, message, and optional cause."""
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


class FileConfigLoader:
    """Loads base and scope tables from TOML files."""

    def load_project_config(
        self, project_root: Path | None = None
    ) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        """Load ``[tool.paste_upload]`` from the nearest pyproject.toml.

        Args:
            project_root: Directory to start searching from. If None, searches
                the current directory and its parents.

        Returns:
            ``(base, scopes)``; both empty when no file or section exists.

        Raises:
            ConfigFileError: If the file exists but cannot be parsed.
        """
        pyproject_path = self._find_pyproject_toml(project_root)
        if not pyproject_path:
            return {}, {}
        data = self._read_toml(pyproject_path)
        section = data.get("tool", {}).get("paste_upload", {})
        return self._split_scopes(pyproject_path, section)

    def load_home_config(self) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        """Load the home configuration file, if present."""
        home_config_path = self.home_config_path()
        if not home_config_path.exists():
            return {}, {}
        return self._split_scopes(home_config_path, self._read_toml(home_config_path))

    def home_config_path(self) -> Path:
        """Return the home config path, honouring the environment override."""
        override = os.getenv(HOME_CONFIG_ENV)
        if override:
            return Path(override)
        return Path.home() / ".config" / "paste_upload.toml"

    def _read_toml(self, path: Path) -> dict[str, Any]:
        try:
            with Path(path).open(mode="rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e

    def _split_scopes(
        self, path: Path, section: Any
    ) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        if not isinstance(section, dict):
            raise ConfigFileError(path, "configuration section must be a table")
        base = dict(section)
        scopes_raw = base.pop(SCOPES_KEY, {})
        if not isinstance(scopes_raw, dict):
            raise ConfigFileError(path, f"'{SCOPES_KEY}' must be a table of tables")
        scopes = {
            str(name): dict(table)
            for name, table in scopes_raw.items()
            if isinstance(table, dict)
        }
        return base, scopes

    def _find_pyproject_toml(self, start_dir: Path | None = None) -> Path | None:
        """Find pyproject.toml by searching up the directory tree."""
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()
        while True:
            pyproject_path = current / "pyproject.toml"
            if pyproject_path.exists():
                return pyproject_path
            if current == current.parent:  # filesystem root
                return None
            current = current.parent
