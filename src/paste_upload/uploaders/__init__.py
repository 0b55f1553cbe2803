"""Destination uploaders and the factory mapping used to build them."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TYPE_CHECKING

from paste_upload.core.types import Destination

from .base import BaseUploader, UploadContext, Uploader
from .s3 import S3Uploader
from .workspace import WorkspaceUploader

if TYPE_CHECKING:
    from paste_upload.cache import UploadCache
    from paste_upload.config.types import ResolvedConfig
    from paste_upload.hashing import Hasher
    from paste_upload.ports import EditorPort

UploaderFactory = Callable[..., Uploader]


def _build_s3(
    resolved: ResolvedConfig,
    *,
    cache: UploadCache,
    hasher: Hasher,
    editor: EditorPort,  # noqa: ARG001
    log: logging.Logger | None = None,
) -> Uploader:
    return S3Uploader(resolved.s3_config(), cache=cache, hasher=hasher, log=log)


def _build_workspace(
    resolved: ResolvedConfig,
    *,
    cache: UploadCache,
    hasher: Hasher,
    editor: EditorPort,
    log: logging.Logger | None = None,
) -> Uploader:
    return WorkspaceUploader(
        resolved.workspace_config(), editor=editor, cache=cache, hasher=hasher, log=log
    )


UPLOADER_FACTORIES: dict[Destination, UploaderFactory] = {
    Destination.S3: _build_s3,
    Destination.WORKSPACE: _build_workspace,
}

__all__ = [
    "UPLOADER_FACTORIES",
    "BaseUploader",
    "S3Uploader",
    "UploadContext",
    "Uploader",
    "UploaderFactory",
    "WorkspaceUploader",
]
