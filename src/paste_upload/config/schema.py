"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces values from
files, environment variables and programmatic overrides into typed settings
with defaults. Per-destination settings are nested models; environment
variables address them with a double underscore, e.g.
``PASTE_UPLOAD_S3__BUCKET``.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paste_upload.core.types import Destination

MimeDetection = Literal["content", "extension", "none"]
FilenamePolicy = Literal["keep-original", "always-generate"]
FileNamingMethod = Literal[
    "content-hash",
    "content-hash-short",
    "uuid",
    "nanoid",
    "timestamp",
    "iso-timestamp",
    "prompt",
]
MultipleFilesPolicy = Literal["allow", "deny", "prompt"]

DEFAULT_IMAGE_SNIPPET = "![${filenameWithoutExtension}](${url})"
DEFAULT_SNIPPET = "[${filename}](${url})"


class S3Settings(BaseModel):
    """Object-store destination settings."""

    region: str = Field(default="", description="Bucket region, e.g. us-east-1")
    endpoint: str = Field(
        default="", description="Endpoint override for S3-compatible stores"
    )
    access_key_id: str = Field(default="", description="Static access key id")
    secret_access_key: SecretStr = Field(
        default=SecretStr(""), description="Static secret access key"
    )
    bucket: str = Field(default="", description="Target bucket")
    prefix: str = Field(
        default="${year}/${month}/",
        description="Key prefix template (${year}, ${month}, ${day}, ${basename})",
    )
    public_url_base: str = Field(
        default="", description="Base of generated public URLs (same tokens)"
    )
    omit_extension: bool = Field(
        default=False, description="Drop the file extension from object keys"
    )
    skip_existing: bool = Field(
        default=False, description="Probe and skip writes for existing keys"
    )
    force_path_style: bool = Field(
        default=False, description="Use path-style bucket addressing"
    )
    client_options: str = Field(
        default="", description="JSON object merged into the client arguments"
    )


class WorkspaceSettings(BaseModel):
    """Workspace-folder destination settings."""

    path: str = Field(
        default="assets", description="Folder relative to the workspace root"
    )
    link_base: str = Field(
        default="assets/", description="Link prefix template for generated URLs"
    )


class UploadSettings(BaseSettings):
    """Pydantic settings schema for one configuration scope.

    The env settings name the PASTE_UPLOAD_* variables. They are read by
    `resolver.load_env_values`, which merges them with the other sources;
    instances are then built with `model_validate` from the merged values.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASTE_UPLOAD_",
        env_nested_delimiter="__",
        env_file=None,
        case_sensitive=False,
        extra="ignore",  # Ignore unknown keys for forward compatibility
    )

    # --- Per-scope behaviour ---

    enabled: bool = Field(default=True, description="Upload pasted files")
    destination: Destination = Field(default=Destination.S3)
    size_limit: int = Field(
        default=10 * 1024 * 1024,
        description="Total bytes before a confirmation prompt (0 disables)",
        ge=0,
    )
    mime_detection: MimeDetection = Field(default="content")
    filename_policy: FilenamePolicy = Field(default="keep-original")
    file_naming_method: FileNamingMethod = Field(default="content-hash")
    image_snippet: str = Field(default=DEFAULT_IMAGE_SNIPPET, min_length=1)
    default_snippet: str = Field(default=DEFAULT_SNIPPET, min_length=1)
    multiple_files: MultipleFilesPolicy = Field(default="prompt")
    mime_filter: str = Field(
        default="", description="Case-insensitive regex a MIME type must match"
    )
    ignore_workspace_files: bool = Field(default=True)
    retrieve_original_image: bool = Field(default=False)

    # --- Global behaviour ---

    undo_limit: int = Field(default=10, ge=0)
    cache_max_entries: int = Field(default=1000, ge=1)

    # --- Destinations ---

    s3: S3Settings = Field(default_factory=S3Settings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)

    @field_validator("destination", mode="before")
    @classmethod
    def parse_destination(cls, v: Any) -> Destination:
        """Parse a destination from its name or value, case-insensitively."""
        if isinstance(v, Destination):
            return v
        if isinstance(v, str):
            normalized = v.strip().lower()
            for member in Destination:
                if normalized in (member.value, member.name.lower()):
                    return member
        raise ValueError(
            f"Invalid destination: {v}. Must be one of: "
            + ", ".join(d.value for d in Destination)
        )

    @field_validator("mime_filter")
    @classmethod
    def check_mime_filter(cls, v: str) -> str:
        """Reject filters that are not valid regular expressions."""
        import re

        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid mime_filter regex {v!r}: {e}") from e
        return v
