"""Core data types that flow through the upload pipeline.

A paste or drop starts as a `RawPayload`, is broken into `IncompleteFile`
candidates by the loader, completed into `ResourceFile` values, and finally
turned into `UploadResult` records by an uploader. All types are immutable;
each stage produces new values instead of mutating its input.
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from types import MappingProxyType
import typing

T = typing.TypeVar("T")

OCTET_STREAM = "application/octet-stream"


def _freeze_mapping(
    m: dict[str, T] | typing.Mapping[str, T] | None,
) -> typing.Mapping[str, T] | None:
    """Return an immutable mapping view or None."""
    if m is None or isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m))


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


# --- Result type ---
# Per-file upload outcomes are data, not exceptions, so one failing file never
# unwinds its siblings.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success(typing.Generic[TSuccess]):
    """A successful outcome."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure(typing.Generic[TFailure]):
    """A failed outcome, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


# --- Payload ---


@dataclasses.dataclass(frozen=True, slots=True)
class PayloadPart:
    """One entry of a clipboard or drop payload.

    A part carries either inline bytes (a file attachment, optionally named) or
    string content such as a `text/uri-list` or `text/html` fragment.
    """

    mime_hint: str
    data: bytes | None = None
    filename: str | None = None
    text: str | None = None

    def __post_init__(self) -> None:
        """Validate that exactly one content slot is populated."""
        _require(
            condition=isinstance(self.mime_hint, str),
            message="must be str",
            field_name="mime_hint",
            exc=TypeError,
        )
        _require(
            condition=(self.data is None) != (self.text is None),
            message="exactly one of data or text must be set",
            field_name="content",
        )
        if self.data is not None:
            _require(
                condition=isinstance(self.data, bytes | bytearray),
                message="must be bytes",
                field_name="data",
                exc=TypeError,
            )

    @property
    def is_file(self) -> bool:
        """Whether this part is an inline file attachment."""
        return self.data is not None


@dataclasses.dataclass(frozen=True, slots=True)
class RawPayload:
    """An ordered multi-part bag produced by the editor per interaction."""

    parts: tuple[PayloadPart, ...] = ()

    def __post_init__(self) -> None:
        """Validate part container type."""
        _require(
            condition=isinstance(self.parts, tuple)
            and all(isinstance(p, PayloadPart) for p in self.parts),
            message="must be a tuple[PayloadPart, ...]",
            field_name="parts",
            exc=TypeError,
        )

    def files(self) -> tuple[PayloadPart, ...]:
        """Return the inline file attachments in payload order."""
        return tuple(p for p in self.parts if p.is_file)

    def get_text(self, mime: str) -> str | None:
        """Return the first string part whose hint matches `mime`, if any."""
        wanted = mime.lower()
        for part in self.parts:
            if part.text is not None and part.mime_hint.lower() == wanted:
                return part.text
        return None

    # --- Ergonomic constructors ---
    @classmethod
    def from_bytes(
        cls, data: bytes, *, filename: str | None = None, mime: str = ""
    ) -> RawPayload:
        """Create a single-attachment payload."""
        return cls(parts=(PayloadPart(mime_hint=mime, data=data, filename=filename),))

    @classmethod
    def from_uris(cls, *uris: str) -> RawPayload:
        """Create a payload holding a `text/uri-list` part."""
        return cls(parts=(PayloadPart(mime_hint="text/uri-list", text="\r\n".join(uris)),))


# --- Files ---


@dataclasses.dataclass(frozen=True, slots=True)
class IncompleteFile:
    """A candidate file whose identity may still be missing."""

    data: bytes
    name: str | None = None
    mime: str | None = None
    extension: str | None = None
    source_uri: str | None = None

    def __post_init__(self) -> None:
        """Validate buffer type."""
        _require(
            condition=isinstance(self.data, bytes | bytearray),
            message="must be bytes",
            field_name="data",
            exc=TypeError,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ResourceFile:
    """A file with complete identity, ready for upload.

    `extension` never carries a leading dot and may be empty.
    """

    name: str
    mime: str
    extension: str
    data: bytes

    def __post_init__(self) -> None:
        """Validate identity invariants."""
        _require(
            condition=isinstance(self.name, str) and self.name.strip() != "",
            message="must be a non-empty str",
            field_name="name",
            exc=TypeError,
        )
        _require(
            condition=isinstance(self.mime, str) and self.mime.strip() != "",
            message="must be a non-empty str",
            field_name="mime",
            exc=TypeError,
        )
        _require(
            condition=isinstance(self.extension, str)
            and not self.extension.startswith("."),
            message="must be a str without a leading dot",
            field_name="extension",
        )
        _require(
            condition=isinstance(self.data, bytes | bytearray),
            message="must be bytes",
            field_name="data",
            exc=TypeError,
        )

    @property
    def filename(self) -> str:
        """The name with its extension appended when present."""
        return f"{self.name}.{self.extension}" if self.extension else self.name

    @property
    def size(self) -> int:
        """Buffer size in bytes."""
        return len(self.data)


# --- Upload results and undo ---

UndoKind = typing.Literal["s3-delete"]


@dataclasses.dataclass(frozen=True, slots=True)
class UndoAction:
    """A tagged undo instruction interpreted by the uploader that issued it."""

    kind: UndoKind
    params: typing.Mapping[str, str] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze parameters."""
        _require(
            condition=self.kind in ("s3-delete",),
            message=f"unknown undo kind {self.kind!r}",
            field_name="kind",
        )
        frozen = _freeze_mapping(self.params)
        if frozen is not None:
            object.__setattr__(self, "params", frozen)


@dataclasses.dataclass(frozen=True, slots=True)
class UploadResult:
    """Outcome of delivering one file to a destination."""

    uri: str
    undo_title: str | None = None
    undo: UndoAction | None = None
    is_cache_hit: bool = False

    def __post_init__(self) -> None:
        """Validate that cache hits never carry an undo action."""
        _require(
            condition=isinstance(self.uri, str) and self.uri != "",
            message="must be a non-empty str",
            field_name="uri",
            exc=TypeError,
        )
        _require(
            condition=not (self.is_cache_hit and self.undo is not None),
            message="cache hits cannot carry an undo action",
            field_name="undo",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class UndoHistoryEntry:
    """A titled undo action recorded by the orchestrator."""

    title: str
    action: UndoAction
    scope: str | None = None


class Destination(StrEnum):
    """Closed set of upload sinks."""

    S3 = "s3"
    WORKSPACE = "workspace"
