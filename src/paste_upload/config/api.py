"""Public API for the configuration system."""

from pathlib import Path
from typing import Any

from .resolver import ConfigResolver
from .types import ResolvedConfig

# Global resolver instance for efficient reuse
_resolver = ConfigResolver()


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    scope: str | None = None,
    project_root: Path | None = None,
) -> ResolvedConfig:
    """Resolve configuration for a scope from all sources.

    Precedence: Programmatic > Environment > Scope tables > Project file >
    Home file > Defaults.

    Args:
        programmatic: Overrides with the highest precedence. Only known
            fields are used.
        scope: Scope name (e.g. the document language) selecting
            ``[tool.paste_upload.scopes.<scope>]`` tables.
        project_root: Directory to search for pyproject.toml. If None,
            searches the current directory and its parents.

    Returns:
        ResolvedConfig with merged values and source tracking for audit.

    Raises:
        ConfigurationError: If validation fails or files are malformed.

    Example:
        config = resolve_config(scope="markdown")
        loader_config = config.loader_config()

        config = resolve_config({"destination": "workspace"})
    """
    return _resolver.resolve(
        programmatic=programmatic, scope=scope, project_root=project_root
    )


def get_config_info(
    *, scope: str | None = None, project_root: Path | None = None
) -> dict[str, Any]:
    """Return structured configuration details for programmatic use."""
    try:
        resolved = resolve_config(scope=scope, project_root=project_root)
    except Exception as e:
        return {"status": "invalid", "error": str(e), "config": None, "sources": {}}
    return {
        "status": "valid",
        "scope": scope,
        "config": resolved.flat_values(),
        "sources": dict(resolved.origin),
        "warnings": config_warnings(resolved),
    }


def config_warnings(resolved: ResolvedConfig) -> list[str]:
    """Get configuration warnings (non-fatal issues)."""
    warnings = []
    settings = resolved.settings
    if settings.destination.value == "s3" and not (
        settings.s3.region and settings.s3.bucket
    ):
        warnings.append("S3 destination selected but region or bucket is not set")
    if settings.size_limit == 0:
        warnings.append("size_limit is 0 - uploads of any size proceed unprompted")
    if settings.undo_limit == 0:
        warnings.append("undo_limit is 0 - uploads cannot be undone")
    return warnings
