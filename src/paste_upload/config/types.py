"""Configuration data types for the upload pipeline.

Follows the resolve-once, freeze-then-flow pattern: settings are resolved for a
scope, then split into small immutable snapshots handed to each component's
constructor. A settings change never mutates a snapshot; the orchestrator
rebuilds the components instead.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, NamedTuple

from paste_upload.core.types import Destination

from .schema import (
    FileNamingMethod,
    FilenamePolicy,
    MimeDetection,
    MultipleFilesPolicy,
    UploadSettings,
)

# --- Source Tracking Types ---

ConfigOrigin = Literal["programmatic", "env", "file", "scope", "default"]
SourceMap = Mapping[str, ConfigOrigin]

_SECRET_FIELDS = frozenset({"s3.secret_access_key", "s3.access_key_id"})


@dataclass(frozen=True)
class LoaderConfig:
    """Snapshot consumed by the resource loader."""

    enabled: bool
    size_limit: int
    mime_detection: MimeDetection
    filename_policy: FilenamePolicy
    file_naming_method: FileNamingMethod
    image_snippet: str
    default_snippet: str
    multiple_files: MultipleFilesPolicy
    mime_filter: str
    ignore_workspace_files: bool
    retrieve_original_image: bool


@dataclass(frozen=True)
class S3Config:
    """Snapshot consumed by the object-store uploader."""

    region: str
    bucket: str
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    prefix: str = ""
    public_url_base: str = ""
    omit_extension: bool = False
    skip_existing: bool = False
    force_path_style: bool = False
    client_options: str = ""

    def __repr__(self) -> str:
        """Representation with redacted credentials for safe logging."""
        secret = "[REDACTED]" if self.secret_access_key else None
        return (
            f"S3Config(region={self.region!r}, bucket={self.bucket!r}, "
            f"endpoint={self.endpoint!r}, secret_access_key={secret!r}, "
            f"prefix={self.prefix!r}, public_url_base={self.public_url_base!r})"
        )


@dataclass(frozen=True)
class WorkspaceConfig:
    """Snapshot consumed by the workspace uploader."""

    path: str
    link_base: str


class ResolvedConfig(NamedTuple):
    """Validated settings for one scope plus the origin of each value."""

    settings: UploadSettings
    scope: str | None
    origin: SourceMap

    @property
    def destination(self) -> Destination:
        return self.settings.destination

    @property
    def undo_limit(self) -> int:
        return self.settings.undo_limit

    def loader_config(self) -> LoaderConfig:
        s = self.settings
        return LoaderConfig(
            enabled=s.enabled,
            size_limit=s.size_limit,
            mime_detection=s.mime_detection,
            filename_policy=s.filename_policy,
            file_naming_method=s.file_naming_method,
            image_snippet=s.image_snippet,
            default_snippet=s.default_snippet,
            multiple_files=s.multiple_files,
            mime_filter=s.mime_filter,
            ignore_workspace_files=s.ignore_workspace_files,
            retrieve_original_image=s.retrieve_original_image,
        )

    def s3_config(self) -> S3Config:
        s3 = self.settings.s3
        return S3Config(
            region=s3.region,
            bucket=s3.bucket,
            endpoint=s3.endpoint,
            access_key_id=s3.access_key_id,
            secret_access_key=s3.secret_access_key.get_secret_value(),
            prefix=s3.prefix,
            public_url_base=s3.public_url_base,
            omit_extension=s3.omit_extension,
            skip_existing=s3.skip_existing,
            force_path_style=s3.force_path_style,
            client_options=s3.client_options,
        )

    def workspace_config(self) -> WorkspaceConfig:
        ws = self.settings.workspace
        return WorkspaceConfig(path=ws.path, link_base=ws.link_base)

    def flat_values(self) -> dict[str, object]:
        """Return dotted-key values with secrets redacted."""
        values: dict[str, object] = {}
        for key, value in self.settings.model_dump(mode="json").items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    values[f"{key}.{sub_key}"] = sub_value
            else:
                values[key] = value
        for key in _SECRET_FIELDS:
            if values.get(key):
                values[key] = "<redacted>"
        return values

    def audit(self) -> str:
        """Generate a redacted report showing where each value came from."""
        lines = []
        for field, value in self.flat_values().items():
            origin = self.origin.get(field, "default")
            lines.append(f"{field}: {origin}:{value}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        """Repr without secrets for safe debugging."""
        return f"ResolvedConfig(scope={self.scope!r}, values={self.flat_values()!r})"
