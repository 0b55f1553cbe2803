"""Paste or drop a file, upload it, and insert a reference to it."""

import importlib.metadata
import logging

from paste_upload.cache import JSONFileStore, KeyValueStore, MemoryStore, UploadCache
from paste_upload.config import ResolvedConfig, resolve_config
from paste_upload.core.exceptions import (
    CancellationError,
    ConfigurationError,
    DeliveryError,
    PasteUploadError,
    UserDeclinedError,
    ValidationError,
)
from paste_upload.core.types import (
    Destination,
    PayloadPart,
    RawPayload,
    ResourceFile,
    UndoAction,
    UndoHistoryEntry,
    UploadResult,
)
from paste_upload.hashing import Hasher, get_hasher
from paste_upload.loader import RemoteFetcher, ResourceLoader
from paste_upload.orchestrator import UploadOrchestrator
from paste_upload.ports import EditorPort, NullProgress, ProgressPort, UserPort
from paste_upload.snippet import SnippetTemplates, generate_snippet
from paste_upload.telemetry import (
    LoggingReporter,
    MemoryReporter,
    TelemetryContext,
    TelemetryReporter,
)
from paste_upload.undo import UndoHistory
from paste_upload.uploaders import S3Uploader, UploadContext, WorkspaceUploader

# Version handling
try:
    __version__ = importlib.metadata.version("paste-upload")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Set up a null handler for the library's root logger.
# This prevents 'No handler found' errors if the consuming app has no logging configured.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Entry point
    "UploadOrchestrator",
    "resolve_config",
    "ResolvedConfig",
    # Data model
    "Destination",
    "PayloadPart",
    "RawPayload",
    "ResourceFile",
    "UndoAction",
    "UndoHistoryEntry",
    "UploadResult",
    # Components
    "Hasher",
    "get_hasher",
    "UploadCache",
    "KeyValueStore",
    "MemoryStore",
    "JSONFileStore",
    "ResourceLoader",
    "RemoteFetcher",
    "S3Uploader",
    "WorkspaceUploader",
    "UploadContext",
    "UndoHistory",
    "SnippetTemplates",
    "generate_snippet",
    # Ports
    "EditorPort",
    "ProgressPort",
    "UserPort",
    "NullProgress",
    # Telemetry
    "TelemetryContext",
    "TelemetryReporter",
    "LoggingReporter",
    "MemoryReporter",
    # Exceptions
    "PasteUploadError",
    "ConfigurationError",
    "ValidationError",
    "DeliveryError",
    "CancellationError",
    "UserDeclinedError",
]
