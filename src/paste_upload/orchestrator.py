"""The entry point an editor integration drives per paste or drop.

One interaction is a single loader pass followed by sequential uploads, so the
inserted snippets keep the payload's order. Per-file outcomes are collected as
`Success`/`Failure` values; a failing file is reported and skipped without
affecting its siblings. Nothing raised inside an interaction escapes
`handle_payload`.

Loaders and uploaders are built from frozen per-scope snapshots and memoised.
`on_config_changed` drops every memoised instance so the next interaction
rebuilds them from fresh settings.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TYPE_CHECKING

from paste_upload.cache import UploadCache, check_first_run
from paste_upload.core.exceptions import (
    CancellationError,
    ConfigurationError,
    DeliveryError,
    PasteUploadError,
)
from paste_upload.core.types import (
    Destination,
    Failure,
    RawPayload,
    ResourceFile,
    Result,
    Success,
    UndoHistoryEntry,
    UploadResult,
)
from paste_upload.hashing import get_hasher
from paste_upload.loader import RemoteFetcher, ResourceLoader
from paste_upload.ports import NullProgress
from paste_upload.snippet import SnippetTemplates, generate_snippet
from paste_upload.telemetry import TelemetryContext
from paste_upload.undo import UndoHistory
from paste_upload.uploaders import UPLOADER_FACTORIES, S3Uploader, UploadContext
from paste_upload.uploaders.base import FINGERPRINT_PARAM

if TYPE_CHECKING:
    from paste_upload.cache import KeyValueStore
    from paste_upload.config.types import ResolvedConfig
    from paste_upload.hashing import Hasher
    from paste_upload.ports import EditorPort, ProgressPort, UserPort
    from paste_upload.telemetry import TelemetryContextProtocol
    from paste_upload.uploaders import Uploader

log = logging.getLogger(__name__)

SettingsProvider = Callable[[str | None], "ResolvedConfig"]


class UploadOrchestrator:
    """Resolves, uploads and inserts references for one editor at a time."""

    def __init__(
        self,
        settings_provider: SettingsProvider,
        *,
        ui: UserPort,
        editor: EditorPort,
        store: KeyValueStore,
        hasher: Hasher | None = None,
        fetcher: RemoteFetcher | None = None,
        progress: ProgressPort | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        version: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings_provider: Returns the resolved configuration for a scope;
                ``None`` asks for the unscoped configuration.
            ui: Notifications and prompts.
            editor: Workspace access and the text edit hook.
            store: Durable key-value storage for the upload cache.
            hasher: Content fingerprinting; defaults to the process-wide hasher.
            fetcher: Remote retrieval for URI lists and original images.
            progress: Progress indicators for long transfers.
            telemetry: Scoped timing context; no-op by default.
            version: Running package version; a change clears the cache.
            logger: Logger for this orchestrator and the components it builds.
        """
        self._settings_provider = settings_provider
        self._ui = ui
        self._editor = editor
        self._hasher = hasher or get_hasher()
        self._fetcher = fetcher or RemoteFetcher()
        self._progress = progress or NullProgress()
        self._tele = telemetry or TelemetryContext()
        self._log = logger or log
        self._loaders: dict[str | None, ResourceLoader] = {}
        self._uploaders: dict[str | None, Uploader] = {}

        base = settings_provider(None)
        self._cache = UploadCache(store, max_entries=base.settings.cache_max_entries)
        self._history = UndoHistory(base.undo_limit)
        if version is not None and check_first_run(store, version):
            self._cache.clear()

    @property
    def cache(self) -> UploadCache:
        return self._cache

    @property
    def history(self) -> UndoHistory:
        return self._history

    # --- Per-scope components ---

    def loader_for(self, scope: str | None) -> ResourceLoader:
        loader = self._loaders.get(scope)
        if loader is None:
            resolved = self._settings_provider(scope)
            loader = ResourceLoader(
                resolved.loader_config(),
                ui=self._ui,
                editor=self._editor,
                hasher=self._hasher,
                fetcher=self._fetcher,
                log=self._log,
            )
            self._loaders[scope] = loader
        return loader

    def uploader_for(self, scope: str | None) -> Uploader:
        """Build (or reuse) the uploader for the scope's destination.

        Raises:
            ConfigurationError: If the destination settings are incomplete.
        """
        uploader = self._uploaders.get(scope)
        if uploader is None:
            resolved = self._settings_provider(scope)
            try:
                factory = UPLOADER_FACTORIES[resolved.destination]
            except KeyError as e:
                raise ConfigurationError(
                    f"Unsupported destination: {resolved.destination!r}"
                ) from e
            uploader = factory(
                resolved,
                cache=self._cache,
                hasher=self._hasher,
                editor=self._editor,
                log=self._log,
            )
            self._uploaders[scope] = uploader
        return uploader

    def on_config_changed(self) -> None:
        """Discard memoised components and apply the new undo limit."""
        self._loaders.clear()
        self._uploaders.clear()
        self._history.clamp(self._settings_provider(None).undo_limit)
        self._log.debug("Configuration changed; components will be rebuilt")

    # --- Interaction ---

    async def handle_payload(
        self, payload: RawPayload, *, document_uri: str, scope: str | None = None
    ) -> str | None:
        """Upload everything in `payload` and insert the combined snippet.

        Returns:
            The inserted text, or None when nothing was inserted.
        """
        try:
            return await self._handle_payload(payload, document_uri, scope)
        except PasteUploadError as e:
            self._log.warning("Upload interaction failed: %s", e)
            self._ui.error(str(e))
        except Exception as e:
            self._log.error("Unexpected error during upload: %s", e, exc_info=True)
            self._ui.error(f"Unexpected error during upload: {e}")
        return None

    async def _handle_payload(
        self, payload: RawPayload, document_uri: str, scope: str | None
    ) -> str | None:
        loader = self.loader_for(scope)
        with self._tele("loader.prepare"):
            files = await loader.prepare_files_to_upload(
                payload, document_uri=document_uri, progress=self._progress
            )
        if not files:
            return None

        uploader = self.uploader_for(scope)
        context = UploadContext(document_uri=document_uri, progress=self._progress)
        templates = SnippetTemplates(
            image=loader.config.image_snippet, default=loader.config.default_snippet
        )

        snippets: list[str] = []
        for file in files:
            outcome = await self._upload_one(uploader, file, context)
            if isinstance(outcome, Failure):
                self._report_failure(file, outcome.error)
                continue
            result = outcome.value
            snippets.append(generate_snippet(file, result.uri, templates))
            if result.undo is not None and result.undo_title:
                self._history.append(
                    UndoHistoryEntry(result.undo_title, result.undo, scope=scope)
                )

        if not snippets:
            return None
        text = " ".join(snippets)
        with self._tele("edit.apply"):
            applied = await self._editor.replace_selection(document_uri, text)
        if not applied:
            self._log.warning("Editor rejected the edit for %s", document_uri)
            return None
        return text

    async def _upload_one(
        self, uploader: Uploader, file: ResourceFile, context: UploadContext
    ) -> Result[UploadResult, PasteUploadError]:
        with self._tele("upload.file", mime=file.mime):
            try:
                result = await uploader.upload_file(file, context)
            except PasteUploadError as e:
                self._tele.count("upload.error")
                return Failure(e)
        if result.is_cache_hit:
            self._tele.count("upload.cache_hit")
        return Success(result)

    def _report_failure(self, file: ResourceFile, error: PasteUploadError) -> None:
        if isinstance(error, CancellationError):
            self._log.info("Upload of %s cancelled", file.filename)
            self._ui.info(f"Upload of {file.filename} was cancelled.")
            return
        self._log.warning("Upload of %s failed: %s", file.filename, error)
        self._ui.error(f"Failed to upload {file.filename}: {error}")

    # --- Commands ---

    async def test_connection(self, scope: str | None = None) -> bool:
        """Probe the scope's S3 destination with a small write and delete."""
        try:
            uploader = self.uploader_for(scope)
            if not isinstance(uploader, S3Uploader):
                self._ui.info("Connection test is only available for S3 destinations.")
                return False
            url = await uploader.test_connection(
                UploadContext(document_uri="", progress=self._progress)
            )
        except PasteUploadError as e:
            self._log.warning("Connection test failed: %s", e)
            self._ui.error(f"Connection test failed: {e}")
            return False
        self._ui.info(f"Connection test succeeded: {url}")
        return True

    def clear_cache(self) -> None:
        self._cache.clear()
        self._ui.info("Upload cache cleared.")

    async def undo_menu(self) -> bool:
        """Let the user pick a recorded upload to undo; False if nothing ran."""
        entries = self._history.entries()
        if not entries:
            self._ui.info("Nothing to undo.")
            return False
        index = await self._ui.pick("Undo upload", [e.title for e in entries])
        if index is None or not 0 <= index < len(entries):
            return False
        return await self.undo_entry(entries[index])

    async def undo_entry(self, entry: UndoHistoryEntry) -> bool:
        """Run one undo action; it leaves the history whether or not it succeeds.

        The action runs against the settings of the scope that produced it.
        Once it succeeds the content's cache entry is dropped, so pasting the
        same bytes again uploads them afresh.
        """
        self._history.remove(entry)
        try:
            uploader = self._uploader_for_undo(entry.scope)
            await uploader.undo(entry.action)
        except (DeliveryError, ConfigurationError, NotImplementedError) as e:
            self._log.warning("Undo %r failed: %s", entry.title, e)
            self._ui.error(f"Undo failed: {e}")
            return False
        fingerprint = entry.action.params.get(FINGERPRINT_PARAM)
        if fingerprint:
            self._cache.remove(fingerprint)
        self._ui.info(f"Undone: {entry.title}")
        return True

    def _uploader_for_undo(self, scope: str | None) -> Uploader:
        # The action names bucket and key; the scope supplies endpoint and keys
        uploader = self._uploaders.get(scope)
        if isinstance(uploader, S3Uploader):
            return uploader
        return UPLOADER_FACTORIES[Destination.S3](
            self._settings_provider(scope),
            cache=self._cache,
            hasher=self._hasher,
            editor=self._editor,
            log=self._log,
        )
