"""Configuration resolution with precedence handling.

Merges configuration from every source in this order (later wins):
Defaults < Home file < Project file < Scope tables < Environment < Programmatic

Scope tables (``[...scopes.<scope>]``) from the home file are applied before
those of the project file, both after the base tables.
"""

import os
from pathlib import Path
from typing import Any

from paste_upload.core.exceptions import ConfigurationError

from .file_loader import ConfigFileError, FileConfigLoader
from .schema import UploadSettings
from .types import ConfigOrigin, ResolvedConfig

# The schema declares the variable naming; this module does the reading
ENV_PREFIX = UploadSettings.model_config["env_prefix"].upper()
NESTED_DELIMITER = UploadSettings.model_config["env_nested_delimiter"]
_NESTED_FIELDS = frozenset({"s3", "workspace"})
# Environment variables that configure the loader rather than a field
_RESERVED_ENV = frozenset({"PASTE_UPLOAD_CONFIG_HOME", "PASTE_UPLOAD_TELEMETRY"})


class SourceTracker:
    """Tracks the origin of each dotted configuration key during resolution."""

    def __init__(self) -> None:
        self._origins: dict[str, ConfigOrigin] = {}

    def set_origin(self, field: str, origin: ConfigOrigin) -> None:
        self._origins[field] = origin

    def get_source_map(self) -> dict[str, ConfigOrigin]:
        return dict(self._origins)


class ConfigResolver:
    """Resolves configuration for a scope from all sources."""

    def __init__(self, file_loader: FileConfigLoader | None = None) -> None:
        self.file_loader = file_loader or FileConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        scope: str | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Resolve configuration with proper precedence.

        Args:
            programmatic: Overrides with the highest precedence. Nested
                destination settings are given as dicts (``{"s3": {...}}``).
            scope: Scope name (usually the editor language) whose tables apply.
            project_root: Directory to search for pyproject.toml.

        Returns:
            ResolvedConfig with validated settings and source tracking.

        Raises:
            ConfigurationError: If files are malformed or validation fails.
        """
        tracker = SourceTracker()
        merged: dict[str, Any] = {}

        try:
            home_base, home_scopes = self.file_loader.load_home_config()
            project_base, project_scopes = self.file_loader.load_project_config(
                project_root
            )
        except ConfigFileError as e:
            raise ConfigurationError(str(e)) from e

        _merge_into(merged, home_base, "file", tracker)
        _merge_into(merged, project_base, "file", tracker)
        if scope:
            _merge_into(merged, home_scopes.get(scope, {}), "scope", tracker)
            _merge_into(merged, project_scopes.get(scope, {}), "scope", tracker)
        _merge_into(merged, load_env_values(), "env", tracker)
        if programmatic:
            _merge_into(merged, programmatic, "programmatic", tracker)

        known = set(UploadSettings.model_fields)
        filtered = {k: v for k, v in merged.items() if k in known}
        try:
            settings = UploadSettings.model_validate(filtered)
        except ValueError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        return ResolvedConfig(
            settings=settings, scope=scope, origin=tracker.get_source_map()
        )


def load_env_values(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect PASTE_UPLOAD_* variables as a nested dict of raw strings."""
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for name, raw in env.items():
        upper = name.upper()
        if not upper.startswith(ENV_PREFIX) or upper in _RESERVED_ENV:
            continue
        key = upper[len(ENV_PREFIX) :].lower()
        if NESTED_DELIMITER in key:
            group, _, field = key.partition(NESTED_DELIMITER)
            if group in _NESTED_FIELDS and field:
                values.setdefault(group, {})[field] = raw
            continue
        values[key] = raw
    return values


def _merge_into(
    target: dict[str, Any],
    source: dict[str, Any],
    origin: ConfigOrigin,
    tracker: SourceTracker,
) -> None:
    for key, value in source.items():
        if key in _NESTED_FIELDS and isinstance(value, dict):
            nested = target.setdefault(key, {})
            for sub_key, sub_value in value.items():
                nested[sub_key] = sub_value
                tracker.set_origin(f"{key}.{sub_key}", origin)
        else:
            target[key] = value
            tracker.set_origin(key, origin)
