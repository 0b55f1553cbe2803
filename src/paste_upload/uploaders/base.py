"""Uploader protocol and the shared cache-first upload flow."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from paste_upload.core.types import ResourceFile, UndoAction, UploadResult
from paste_upload.ports import NullProgress, ProgressPort

if TYPE_CHECKING:
    from paste_upload.cache import UploadCache
    from paste_upload.hashing import Hasher

logger = logging.getLogger(__name__)

# Undo parameter naming the cache entry an undo must drop
FINGERPRINT_PARAM = "fingerprint"


@dataclass(frozen=True, slots=True)
class UploadContext:
    """Per-interaction context handed to an uploader."""

    document_uri: str
    progress: ProgressPort = field(default_factory=NullProgress)


@runtime_checkable
class Uploader(Protocol):
    """Delivers a file to a destination and returns its reference URL."""

    async def upload_file(
        self, file: ResourceFile, context: UploadContext
    ) -> UploadResult: ...

    async def undo(self, action: UndoAction) -> None: ...


class BaseUploader:
    """Fingerprint, consult the cache, upload on miss, then cache the URL.

    A cache hit returns no undo action: nothing was written, and deleting the
    object would break the earlier reference that still points at it. Undo
    actions carry the fingerprint so the entry can be dropped once undone.
    Subclasses implement `_upload`.
    """

    def __init__(
        self,
        *,
        cache: UploadCache,
        hasher: Hasher,
        log: logging.Logger | None = None,
    ) -> None:
        self._cache = cache
        self._hasher = hasher
        self._log = log or logger

    async def upload_file(
        self, file: ResourceFile, context: UploadContext
    ) -> UploadResult:
        fingerprint = await asyncio.to_thread(self._hasher.hash, file.data)
        cached = self._cache.get(fingerprint)
        if cached is not None:
            self._log.info("Cache hit for %s: %s", file.filename, cached)
            return UploadResult(uri=cached, is_cache_hit=True)

        result = await self._upload(file, context)
        self._cache.put(fingerprint, result.uri)
        if result.undo is not None:
            params = {**result.undo.params, FINGERPRINT_PARAM: fingerprint}
            result = replace(result, undo=UndoAction(result.undo.kind, params))
        self._log.info("Uploaded %s to %s", file.filename, result.uri)
        return result

    async def undo(self, action: UndoAction) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} cannot undo {action.kind!r} actions"
        )

    async def _upload(self, file: ResourceFile, context: UploadContext) -> UploadResult:
        raise NotImplementedError
