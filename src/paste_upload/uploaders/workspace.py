"""Destination that writes files into the document's workspace folder."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from paste_upload.core.exceptions import DeliveryError
from paste_upload.core.templates import date_tokens, substitute
from paste_upload.core.types import ResourceFile, UploadResult
from paste_upload.uploaders.base import BaseUploader, UploadContext

if TYPE_CHECKING:
    from paste_upload.cache import UploadCache
    from paste_upload.config.types import WorkspaceConfig
    from paste_upload.hashing import Hasher
    from paste_upload.ports import EditorPort


class WorkspaceUploader(BaseUploader):
    """Copies files under ``<workspace root>/<path>`` and links them relatively.

    Files are overwritten in place, so there is nothing to undo.
    """

    def __init__(
        self,
        config: WorkspaceConfig,
        *,
        editor: EditorPort,
        cache: UploadCache,
        hasher: Hasher,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(cache=cache, hasher=hasher, log=log)
        self._config = config
        self._editor = editor
        self._clock = clock or datetime.now

    def target_path(self, root: Path, file: ResourceFile, now: datetime) -> Path:
        relative = substitute(self._config.path, date_tokens(now, file.name))
        return root / relative / file.filename

    def link(self, file: ResourceFile, now: datetime) -> str:
        base = substitute(self._config.link_base, date_tokens(now, file.name))
        if base and not base.endswith("/"):
            base += "/"
        return base + file.filename

    async def _upload(self, file: ResourceFile, context: UploadContext) -> UploadResult:
        root = self._editor.workspace_root(context.document_uri)
        if root is None:
            raise DeliveryError(
                f"No workspace folder contains {context.document_uri}; "
                "open the document inside a workspace to save files there"
            )
        now = self._clock()
        path = self.target_path(Path(root), file, now)
        try:
            await self._editor.create_file(path, file.data)
        except OSError as e:
            raise DeliveryError(f"Failed to write {path}: {e}", cause=e) from e
        self._log.debug("Wrote %d bytes to %s", file.size, path)
        return UploadResult(uri=self.link(file, now))
