"""Resolve a paste or drop payload into complete, policy-checked files.

The loader runs a fixed sequence of stages over the payload:

1. bail out when disabled for the scope
2. extract candidates (attachments, else the URI list)
3. complete each candidate's name, MIME type and extension
4. de-duplicate names within the batch
5. apply the MIME filter
6. enforce the multiple-files policy
7. optionally swap in the original image referenced by the HTML part
8. enforce the total size limit

A declined prompt at any stage yields an empty batch rather than an error.
"""

from __future__ import annotations

import base64
from collections.abc import Sequence
from html.parser import HTMLParser
import logging
from pathlib import Path, PurePosixPath
import re
from typing import TYPE_CHECKING
from urllib.parse import unquote_to_bytes, urlparse
from urllib.request import url2pathname

from paste_upload.core.exceptions import PasteUploadError, UserDeclinedError
from paste_upload.core.mime import (
    extension_from_mime,
    mime_from_extension,
    normalize_extension,
    normalize_mime,
    sniff_mime,
)
from paste_upload.core.types import OCTET_STREAM, IncompleteFile, RawPayload, ResourceFile
from paste_upload.hashing import get_hasher
from paste_upload.loader.naming import NameGenerator, deduplicate, needs_generated_name
from paste_upload.loader.remote import RemoteFetcher
from paste_upload.ports import NullProgress, ProgressPort

if TYPE_CHECKING:
    from paste_upload.config.types import LoaderConfig
    from paste_upload.hashing import Hasher
    from paste_upload.ports import EditorPort, UserPort

logger = logging.getLogger(__name__)

URI_LIST = "text/uri-list"
HTML = "text/html"


class _ImageSourceParser(HTMLParser):
    """Collects the first ``<img src>`` with an http(s) scheme."""

    def __init__(self) -> None:
        super().__init__()
        self.src: str | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self.src is not None or tag != "img":
            return
        for name, value in attrs:
            if name != "src" or not value:
                continue
            try:
                scheme = urlparse(value).scheme
            except ValueError:
                continue
            if scheme in ("http", "https"):
                self.src = value
                return


def find_image_source(html: str) -> str | None:
    """Return the first remote image source embedded in an HTML fragment."""
    parser = _ImageSourceParser()
    parser.feed(html)
    parser.close()
    return parser.src


def split_filename(filename: str | None) -> tuple[str | None, str | None]:
    """Split ``photo.PNG`` into ``("photo", "png")``."""
    if not filename:
        return None, None
    path = PurePosixPath(filename.replace("\\", "/"))
    if path.suffix and path.stem:
        return path.stem, normalize_extension(path.suffix)
    return path.name or None, None


def decode_data_uri(uri: str) -> IncompleteFile:
    """Decode a ``data:`` URI into a nameless candidate.

    Raises:
        ValueError: If the URI is malformed.
    """
    header, sep, body = uri[len("data:") :].partition(",")
    if not sep:
        raise ValueError("data URI has no ',' separator")
    params = header.split(";")
    if params[-1].lower() == "base64":
        data = base64.b64decode(body, validate=False)
    else:
        data = unquote_to_bytes(body)
    mime = normalize_mime(params[0])
    return IncompleteFile(data=data, mime=mime, source_uri=uri[:64])


class ResourceLoader:
    """Turns a `RawPayload` into the list of files to upload."""

    def __init__(
        self,
        config: LoaderConfig,
        *,
        ui: UserPort,
        editor: EditorPort,
        hasher: Hasher | None = None,
        fetcher: RemoteFetcher | None = None,
        naming: NameGenerator | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._ui = ui
        self._editor = editor
        self._fetcher = fetcher or RemoteFetcher()
        self._naming = naming or NameGenerator(
            config.file_naming_method, hasher=hasher or get_hasher(), ui=ui
        )
        self._log = log or logger
        self._mime_filter = (
            re.compile(config.mime_filter, re.IGNORECASE) if config.mime_filter else None
        )

    async def prepare_files_to_upload(
        self,
        payload: RawPayload,
        *,
        document_uri: str | None = None,
        progress: ProgressPort | None = None,
    ) -> list[ResourceFile]:
        """Run every loader stage; an empty list means nothing to upload."""
        if not self.config.enabled:
            self._log.debug("Uploads disabled for this scope")
            return []
        progress = progress or NullProgress()

        candidates = await self._extract(payload, progress)
        files = await self._complete_all(candidates)
        files = self._apply_mime_filter(files)
        try:
            await self._enforce_multiplicity(files)
            if self.config.retrieve_original_image:
                files = await self._retrieve_original(payload, files, progress)
            await self._enforce_size_limit(files)
        except UserDeclinedError as e:
            self._log.info("Upload declined: %s", e)
            return []
        self._log.debug(
            "Prepared %d file(s) for %s", len(files), document_uri or "<unknown>"
        )
        return files

    # --- Extraction ---

    async def _extract(
        self, payload: RawPayload, progress: ProgressPort
    ) -> list[IncompleteFile]:
        attachments = payload.files()
        if attachments:
            candidates = []
            for part in attachments:
                name, extension = split_filename(part.filename)
                candidates.append(
                    IncompleteFile(
                        data=bytes(part.data or b""),
                        name=name,
                        mime=normalize_mime(part.mime_hint),
                        extension=extension,
                    )
                )
            return candidates

        uri_list = payload.get_text(URI_LIST)
        if not uri_list:
            return []
        candidates = []
        for line in uri_list.splitlines():
            uri = line.strip()
            if not uri or uri.startswith("#"):
                continue
            candidate = await self._resolve_uri(uri, progress)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _resolve_uri(
        self, uri: str, progress: ProgressPort
    ) -> IncompleteFile | None:
        scheme = urlparse(uri).scheme.lower()
        try:
            if scheme == "file":
                return self._read_local(uri)
            if scheme in ("http", "https"):
                return await self._fetcher.download(uri, progress=progress)
            if scheme == "data":
                return decode_data_uri(uri)
        except (OSError, ValueError, PasteUploadError) as e:
            self._log.warning("Skipping %s: %s", uri[:120], e)
            return None
        self._log.debug("Skipping unsupported URI scheme %r", scheme)
        return None

    def _read_local(self, uri: str) -> IncompleteFile | None:
        path = Path(url2pathname(urlparse(uri).path))
        if self.config.ignore_workspace_files and self._inside_workspace(path):
            self._log.debug("Skipping workspace file %s", path)
            return None
        if not path.is_file():
            raise OSError(f"not a regular file: {path}")
        name, extension = split_filename(path.name)
        return IncompleteFile(
            data=path.read_bytes(), name=name, extension=extension, source_uri=uri
        )

    def _inside_workspace(self, path: Path) -> bool:
        resolved = path.resolve()
        return any(
            resolved.is_relative_to(Path(folder).resolve())
            for folder in self._editor.workspace_folders()
        )

    # --- Identity ---

    async def _complete_all(
        self, candidates: Sequence[IncompleteFile]
    ) -> list[ResourceFile]:
        completed = []
        for candidate in candidates:
            file = await self.complete(candidate)
            if file is not None:
                completed.append(file)
        names = deduplicate(f.name for f in completed)
        return [
            f if f.name == name else ResourceFile(name, f.mime, f.extension, f.data)
            for f, name in zip(completed, names, strict=True)
        ]

    async def complete(self, candidate: IncompleteFile) -> ResourceFile | None:
        """Fill in a candidate's identity; None when it resolves to no name."""
        cfg = self.config
        name = candidate.name
        if needs_generated_name(
            name, always_generate=cfg.filename_policy == "always-generate"
        ):
            name = await self._naming.generate(candidate.data, name)
        if not name:
            self._log.info("Dropping file without a name")
            return None

        mime = normalize_mime(candidate.mime)
        extension = normalize_extension(candidate.extension)
        if cfg.mime_detection == "content":
            mime = sniff_mime(candidate.data) or mime
        if cfg.mime_detection != "none":
            if mime is None:
                mime = mime_from_extension(extension)
            if extension is None:
                extension = extension_from_mime(mime)
        return ResourceFile(
            name=name,
            mime=mime or OCTET_STREAM,
            extension=extension or "",
            data=bytes(candidate.data),
        )

    # --- Policies ---

    def _apply_mime_filter(self, files: list[ResourceFile]) -> list[ResourceFile]:
        if self._mime_filter is None:
            return files
        kept = [f for f in files if self._mime_filter.search(f.mime)]
        if len(kept) < len(files):
            self._log.debug(
                "MIME filter %r dropped %d file(s)",
                self.config.mime_filter,
                len(files) - len(kept),
            )
        return kept

    async def _enforce_multiplicity(self, files: Sequence[ResourceFile]) -> None:
        if len(files) <= 1:
            return
        match self.config.multiple_files:
            case "deny":
                self._ui.warn(
                    f"Uploading multiple files is disabled ({len(files)} received)."
                )
                raise UserDeclinedError("multiple files denied by policy")
            case "prompt":
                if await self._ui.confirm(f"Upload {len(files)} files?") is not True:
                    raise UserDeclinedError("multiple files not confirmed")

    async def _enforce_size_limit(self, files: Sequence[ResourceFile]) -> None:
        limit = self.config.size_limit
        total = sum(f.size for f in files)
        if limit <= 0 or total <= limit:
            return
        question = (
            f"The upload is {_format_size(total)}, larger than the "
            f"{_format_size(limit)} limit. Upload anyway?"
        )
        if await self._ui.confirm(question) is not True:
            raise UserDeclinedError("size limit exceeded")

    async def _retrieve_original(
        self,
        payload: RawPayload,
        files: list[ResourceFile],
        progress: ProgressPort,
    ) -> list[ResourceFile]:
        html = payload.get_text(HTML)
        src = find_image_source(html) if html else None
        if src is None:
            return files
        try:
            remote_mime = await self._fetcher.head(src)
            if remote_mime and any(f.mime == remote_mime for f in files):
                self._log.debug("Original image %s already present as %s", src, remote_mime)
                return files
            candidate = await self._fetcher.download(src, progress=progress)
            original = await self.complete(candidate)
        except PasteUploadError as e:
            self._log.warning("Could not retrieve original image %s: %s", src, e)
            original = None
        if original is None:
            self._ui.warn(
                "Could not retrieve the original image; animated content may be lost."
            )
            return files
        if not self._apply_mime_filter([original]):
            self._log.info(
                "Original image %s (%s) is excluded by the MIME filter",
                src,
                original.mime,
            )
            return files
        return [original]


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
