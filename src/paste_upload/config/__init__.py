"""Configuration management for the upload pipeline.

Resolve-once, freeze-then-flow:
- ResolvedConfig: validated settings for one scope with audit metadata
- LoaderConfig / S3Config / WorkspaceConfig: immutable per-component snapshots
- SourceMap: where each value came from
"""

from .api import config_warnings, get_config_info, resolve_config
from .file_loader import ConfigFileError, FileConfigLoader
from .resolver import ConfigResolver
from .schema import S3Settings, UploadSettings, WorkspaceSettings
from .types import (
    ConfigOrigin,
    LoaderConfig,
    ResolvedConfig,
    S3Config,
    SourceMap,
    WorkspaceConfig,
)

__all__ = [
    "ConfigFileError",
    "ConfigOrigin",
    "ConfigResolver",
    "FileConfigLoader",
    "LoaderConfig",
    "ResolvedConfig",
    "S3Config",
    "S3Settings",
    "SourceMap",
    "UploadSettings",
    "WorkspaceConfig",
    "WorkspaceSettings",
    "config_warnings",
    "get_config_info",
    "resolve_config",
]
