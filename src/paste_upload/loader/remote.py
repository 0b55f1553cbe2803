"""Network retrieval of remote resources referenced by a paste."""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePosixPath
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

import httpx

from paste_upload.core.exceptions import CancellationError, DeliveryError
from paste_upload.core.mime import extension_from_mime, normalize_mime
from paste_upload.core.types import IncompleteFile
from paste_upload.ports import NullProgress, ProgressPort

if TYPE_CHECKING:
    from paste_upload.ports import ProgressHandle

log = logging.getLogger(__name__)

ACCEPT_IMAGES = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"
DEFAULT_TIMEOUT = 30.0
PROGRESS_DELAY = 1.0  # seconds before a progress indicator is shown
POLL_INTERVAL = 0.1  # seconds


class _Transfer:
    """Running byte count of one download, reported once a handle is attached."""

    def __init__(self) -> None:
        self.total = 0
        self.received = 0
        self.handle: ProgressHandle | None = None

    def attach(self, handle: ProgressHandle) -> None:
        self.handle = handle
        self._report(self.received)

    def advance(self, size: int) -> None:
        self.received += size
        self._report(size)

    def _report(self, size: int) -> None:
        if self.handle is not None and self.total > 0 and size:
            self.handle.report(100.0 * size / self.total)


class RemoteFetcher:
    """HEAD and streaming GET over a shared `httpx.AsyncClient` configuration.

    A `transport` can be injected (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    def _create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"Accept": ACCEPT_IMAGES},
            transport=self._transport,
        )

    async def head(self, url: str) -> str | None:
        """Return the normalised content type reported for `url`.

        Raises:
            DeliveryError: On malformed URLs, transport failures or error
                status codes.
        """
        try:
            async with self._create_http_client() as client:
                response = await client.head(url)
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise _delivery_error(url, e) from e
        return normalize_mime(response.headers.get("content-type"))

    async def download(
        self, url: str, *, progress: ProgressPort | None = None
    ) -> IncompleteFile:
        """Stream `url` into memory.

        A progress indicator opens only when the transfer outlasts
        `PROGRESS_DELAY`; cancelling it aborts the download.

        Raises:
            DeliveryError: On malformed URLs, transport failures or error
                status codes.
            CancellationError: If the user cancels from the progress indicator.
        """
        progress = progress or NullProgress()
        transfer = _Transfer()
        task = asyncio.ensure_future(self._stream(url, transfer))
        try:
            done, _ = await asyncio.wait({task}, timeout=PROGRESS_DELAY)
            if not done:
                async with progress.progress(f"Downloading {url}") as handle:
                    transfer.attach(handle)
                    while not task.done():
                        if handle.cancelled:
                            task.cancel()
                            await asyncio.wait({task})
                            raise CancellationError(f"Download of {url} was cancelled")
                        await asyncio.wait({task}, timeout=POLL_INTERVAL)
            mime, data = task.result()
        except asyncio.CancelledError:
            task.cancel()
            raise

        log.debug("Downloaded %d bytes from %s", len(data), url)
        name, extension = name_from_url(url)
        return IncompleteFile(
            data=data,
            name=name,
            mime=mime,
            extension=extension or extension_from_mime(mime),
            source_uri=url,
        )

    async def _stream(self, url: str, transfer: _Transfer) -> tuple[str | None, bytes]:
        chunks: list[bytes] = []
        try:
            async with (
                self._create_http_client() as client,
                client.stream("GET", url) as response,
            ):
                response.raise_for_status()
                mime = normalize_mime(response.headers.get("content-type"))
                transfer.total = content_length(response.headers)
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    transfer.advance(len(chunk))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise _delivery_error(url, e) from e
        return mime, b"".join(chunks)


def _delivery_error(url: str, e: Exception) -> DeliveryError:
    if isinstance(e, httpx.TimeoutException):
        return DeliveryError(f"URL request timeout: {url}", cause=e)
    if isinstance(e, httpx.HTTPStatusError):
        return DeliveryError(f"HTTP error {e.response.status_code}: {url}", cause=e)
    if isinstance(e, httpx.InvalidURL):
        return DeliveryError(f"Invalid URL {url!r}: {e}", cause=e)
    return DeliveryError(f"Failed to fetch URL {url}: {e}", cause=e)


def content_length(headers: httpx.Headers) -> int:
    """Declared body size, or 0 when the header is absent or malformed."""
    try:
        return max(int(headers.get("content-length") or 0), 0)
    except ValueError:
        return 0


def name_from_url(url: str) -> tuple[str | None, str | None]:
    """Split the last path segment of a URL into (name, extension)."""
    segment = unquote(PurePosixPath(urlparse(url).path).name)
    if not segment:
        return None, None
    path = PurePosixPath(segment)
    if path.suffix:
        return path.stem, path.suffix[1:].lower()
    return segment, None
