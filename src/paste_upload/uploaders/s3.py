"""Object-store destination backed by boto3.

boto3 is synchronous; every client call runs in a worker thread through
``asyncio.to_thread`` so the interaction stays cooperative. Writes stream the
buffer through an abortable reader, which lets a cancelled progress
indicator stop the request mid-body.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
import io
import json
import logging
import threading
from typing import TYPE_CHECKING, Any
from urllib.parse import quote
import uuid

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from paste_upload.core.exceptions import (
    CancellationError,
    ConfigurationError,
    DeliveryError,
    ValidationError,
)
from paste_upload.core.templates import date_tokens, substitute
from paste_upload.core.types import ResourceFile, UndoAction, UploadResult
from paste_upload.uploaders.base import BaseUploader, UploadContext

if TYPE_CHECKING:
    from paste_upload.cache import UploadCache
    from paste_upload.config.types import S3Config
    from paste_upload.hashing import Hasher
    from paste_upload.ports import ProgressHandle

logger = logging.getLogger(__name__)

PROGRESS_DELAY = 1.0  # seconds before a progress indicator is shown
POLL_INTERVAL = 0.1  # seconds

# Keys user overrides may not redefine
PROTECTED_CLIENT_KEYS = frozenset(
    {
        "region_name",
        "endpoint_url",
        "aws_access_key_id",
        "aws_secret_access_key",
        "aws_session_token",
        "config",
        "use_ssl",
        "verify",
        "service_name",
    }
)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

ClientFactory = Callable[[dict[str, Any]], Any]


def _default_client_factory(kwargs: dict[str, Any]) -> Any:
    return boto3.session.Session().client("s3", **kwargs)


def parse_client_options(raw: str) -> dict[str, Any]:
    """Parse the free-form JSON client overrides.

    Raises:
        ValidationError: If the JSON is malformed, not an object, or touches a
            protected key.
    """
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"client options are not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValidationError("client options must be a JSON object")
    protected = sorted(PROTECTED_CLIENT_KEYS.intersection(parsed))
    if protected:
        raise ValidationError(
            f"client options may not override protected keys: {', '.join(protected)}"
        )
    return parsed


class _TransferAbortedError(Exception):
    """Raised from the body reader when the user cancels the transfer."""


class _AbortableReader(io.RawIOBase):
    """Seekable body stream that reports progress and honours an abort flag."""

    def __init__(
        self,
        data: bytes,
        abort: threading.Event,
        on_progress: Callable[[int], None],
    ) -> None:
        self._buffer = io.BytesIO(data)
        self._abort = abort
        self._on_progress = on_progress
        self._high_water = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._buffer.seek(offset, whence)

    def tell(self) -> int:
        return self._buffer.tell()

    def read(self, size: int = -1) -> bytes:
        if self._abort.is_set():
            raise _TransferAbortedError
        chunk = self._buffer.read(size)
        position = self._buffer.tell()
        if position > self._high_water:
            self._on_progress(position - self._high_water)
            self._high_water = position
        return chunk

    def readinto(self, b: Any) -> int:
        chunk = self.read(len(b))
        b[: len(chunk)] = chunk
        return len(chunk)


class S3Uploader(BaseUploader):
    """Uploads files to an S3-compatible bucket."""

    def __init__(
        self,
        config: S3Config,
        *,
        cache: UploadCache,
        hasher: Hasher,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize the uploader; the client is built on first use.

        Raises:
            ConfigurationError: If region or bucket is not configured.
        """
        super().__init__(cache=cache, hasher=hasher, log=log)
        missing = [name for name in ("region", "bucket") if not getattr(config, name)]
        if missing:
            raise ConfigurationError(
                f"S3 destination requires {' and '.join(missing)} to be configured"
            )
        self._config = config
        self._client_factory = client_factory or _default_client_factory
        self._clock = clock or (lambda: datetime.now(UTC))
        self._client: Any | None = None

    @property
    def config(self) -> S3Config:
        return self._config

    # --- Client construction ---

    def client_kwargs(self) -> dict[str, Any]:
        """Build boto3 client arguments from configuration and overrides."""
        cfg = self._config
        kwargs: dict[str, Any] = {"region_name": cfg.region}
        if cfg.endpoint:
            kwargs["endpoint_url"] = cfg.endpoint
        if cfg.access_key_id and cfg.secret_access_key:
            kwargs["aws_access_key_id"] = cfg.access_key_id
            kwargs["aws_secret_access_key"] = cfg.secret_access_key

        config_kwargs: dict[str, Any] = {}
        if cfg.force_path_style:
            config_kwargs["s3"] = {"addressing_style": "path"}
        try:
            overrides = parse_client_options(cfg.client_options)
        except ValidationError as e:
            self._log.warning("Ignoring S3 client options: %s", e)
            overrides = {}
        try:
            kwargs["config"] = BotoConfig(**{**config_kwargs, **overrides})
        except TypeError as e:
            self._log.warning("Ignoring S3 client options: %s", e)
            kwargs["config"] = BotoConfig(**config_kwargs)
        return kwargs

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self.client_kwargs())
        return self._client

    # --- Keys and URLs ---

    def compute_key(self, name: str, extension: str, now: datetime) -> str:
        """Object key: the substituted prefix followed by the file name."""
        prefix = substitute(self._config.prefix, date_tokens(now, name))
        return prefix + self._object_name(name, extension)

    def public_url(self, key: str, name: str, extension: str, now: datetime) -> str:
        """Derive the reference URL for an uploaded object.

        With a configured base, the full key is appended unless the base
        already ends with the substituted prefix (older configurations embed
        the prefix in the base themselves); then only the file name is added.
        """
        cfg = self._config
        if cfg.public_url_base:
            tokens = date_tokens(now, name)
            base = substitute(cfg.public_url_base, tokens)
            prefix = substitute(cfg.prefix, tokens)
            if prefix and not base.endswith(prefix):
                return _join_url(base, key)
            return _join_url(base, self._object_name(name, extension))
        endpoint = cfg.endpoint or f"https://s3.{cfg.region}.amazonaws.com"
        return _join_url(endpoint, f"{cfg.bucket}/{key}")

    def _object_name(self, name: str, extension: str) -> str:
        if extension and not self._config.omit_extension:
            return f"{name}.{extension}"
        return name

    # --- Operations ---

    async def _upload(self, file: ResourceFile, context: UploadContext) -> UploadResult:
        now = self._clock()
        key = self.compute_key(file.name, file.extension, now)
        written = await self.upload_buffer(file.data, key, file.mime, context)
        url = self.public_url(key, file.name, file.extension, now)
        if not written:
            return UploadResult(uri=url)
        return UploadResult(
            uri=url,
            undo_title=f"Delete {key}",
            undo=UndoAction(
                kind="s3-delete", params={"bucket": self._config.bucket, "key": key}
            ),
        )

    async def upload_buffer(
        self, data: bytes, key: str, mime: str, context: UploadContext
    ) -> bool:
        """Write `data` under `key`; returns False when skipped as existing.

        Raises:
            DeliveryError: If the probe or write fails.
            CancellationError: If the user cancels the transfer.
        """
        if self._config.skip_existing and await self.exists(key):
            self._log.info("Skipping upload, %s already exists", key)
            return False

        abort = threading.Event()
        progress_total = max(len(data), 1)
        progress_state: dict[str, ProgressHandle | None] = {"handle": None}

        def on_progress(sent: int) -> None:
            handle = progress_state["handle"]
            if handle is not None:
                handle.report(100.0 * sent / progress_total)

        body = _AbortableReader(data, abort, on_progress)
        task = asyncio.ensure_future(
            asyncio.to_thread(
                self._get_client().put_object,
                Bucket=self._config.bucket,
                Key=key,
                Body=body,
                ContentType=mime,
                ContentLength=len(data),
            )
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=PROGRESS_DELAY)
            if not done:
                async with context.progress.progress(f"Uploading {key}") as handle:
                    progress_state["handle"] = handle
                    while not task.done():
                        if handle.cancelled:
                            abort.set()
                        await asyncio.wait({task}, timeout=POLL_INTERVAL)
            task.result()
        except asyncio.CancelledError:
            abort.set()
            raise
        except _TransferAbortedError as e:
            raise CancellationError(f"Upload of {key} was cancelled") from e
        except (BotoCoreError, ClientError) as e:
            if abort.is_set():
                raise CancellationError(f"Upload of {key} was cancelled") from e
            raise DeliveryError(f"Failed to upload {key}: {e}", cause=e) from e
        return True

    async def exists(self, key: str) -> bool:
        """Probe for an object; a not-found answer is a normal False."""
        try:
            await asyncio.to_thread(
                self._get_client().head_object, Bucket=self._config.bucket, Key=key
            )
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            raise DeliveryError(f"Failed to check {key}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise DeliveryError(f"Failed to check {key}: {e}", cause=e) from e
        return True

    async def delete_object(self, key: str, bucket: str | None = None) -> None:
        """Delete an object by key."""
        try:
            await asyncio.to_thread(
                self._get_client().delete_object,
                Bucket=bucket or self._config.bucket,
                Key=key,
            )
        except (BotoCoreError, ClientError) as e:
            raise DeliveryError(f"Failed to delete {key}: {e}", cause=e) from e
        self._log.info("Deleted %s", key)

    async def undo(self, action: UndoAction) -> None:
        if action.kind != "s3-delete":
            await super().undo(action)
            return
        await self.delete_object(action.params["key"], action.params.get("bucket"))

    async def test_connection(self, context: UploadContext) -> str:
        """Upload and delete a small probe object; returns the probe URL.

        Raises:
            DeliveryError: If either operation fails.
        """
        now = self._clock()
        name = f"paste-upload-connection-test-{uuid.uuid4().hex[:8]}"
        key = self.compute_key(name, "txt", now)
        payload = f"paste-upload connection test {now.isoformat()}\n".encode()
        await self.upload_buffer(payload, key, "text/plain", context)
        await self.delete_object(key)
        return self.public_url(key, name, "txt", now)


def _join_url(base: str, path: str) -> str:
    quoted = quote(path, safe="/~")
    if not base:
        return quoted
    if base.endswith("/"):
        return base + quoted
    return f"{base}/{quoted}"
