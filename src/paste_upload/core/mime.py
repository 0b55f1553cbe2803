"""MIME type and extension utilities.

Provides the lookup tables used to cross-fill a file's MIME type from its
extension (and vice versa) plus content-based sniffing via python-magic.
The preferred tables keep results stable across platforms; `mimetypes` covers
everything else.
"""

from __future__ import annotations

import logging
import mimetypes

logger = logging.getLogger(__name__)

MIME_TO_EXTENSION: dict[str, str] = {
    # Images
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/apng": "apng",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/svg+xml": "svg",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "image/heic": "heic",
    # Documents
    "application/pdf": "pdf",
    "application/json": "json",
    "application/xml": "xml",
    "application/zip": "zip",
    "text/plain": "txt",
    "text/markdown": "md",
    "text/html": "html",
    "text/csv": "csv",
    # Media
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}

EXTENSION_TO_MIME: dict[str, str] = {
    ext: mime
    for mime, ext in MIME_TO_EXTENSION.items()
    if mime not in ("image/vnd.microsoft.icon",)
}
EXTENSION_TO_MIME.update(
    {
        "jpeg": "image/jpeg",
        "jpe": "image/jpeg",
        "tif": "image/tiff",
        "htm": "text/html",
        "markdown": "text/markdown",
    }
)


# Leading magic bytes for the formats pasted most often
SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"fLaC", "audio/flac"),
    (b"OggS", "audio/ogg"),
)


def _match_signature(data: bytes) -> str | None:
    for signature, mime in SIGNATURES:
        if data.startswith(signature):
            return mime
    # RIFF containers carry their format at offset 8
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    if data[4:8] == b"ftyp":
        brand = data[8:12]
        if brand in (b"avif", b"avis"):
            return "image/avif"
        if brand in (b"heic", b"heix", b"mif1"):
            return "image/heic"
        return "video/mp4"
    return None


def normalize_mime(mime: str | None) -> str | None:
    """Lowercase, strip parameters, and map empty or generic types to None."""
    if not mime:
        return None
    base = mime.split(";", 1)[0].strip().lower()
    if not base or base == "application/octet-stream":
        return None
    return base


def normalize_extension(extension: str | None) -> str | None:
    """Strip a leading dot and lowercase; empty becomes None."""
    if not extension:
        return None
    ext = extension.strip().lstrip(".").lower()
    return ext or None


def mime_from_extension(extension: str | None) -> str | None:
    """Look up the MIME type for an extension (without dot)."""
    ext = normalize_extension(extension)
    if ext is None:
        return None
    if ext in EXTENSION_TO_MIME:
        return EXTENSION_TO_MIME[ext]
    mime, _ = mimetypes.guess_type(f"file.{ext}", strict=False)
    return normalize_mime(mime)


def extension_from_mime(mime: str | None) -> str | None:
    """Look up the canonical extension (without dot) for a MIME type."""
    base = normalize_mime(mime)
    if base is None:
        return None
    if base in MIME_TO_EXTENSION:
        return MIME_TO_EXTENSION[base]
    guessed = mimetypes.guess_extension(base, strict=False)
    return normalize_extension(guessed)


def sniff_mime(data: bytes) -> str | None:
    """Detect a MIME type from the buffer's magic bytes.

    Returns None when the content is not recognised or libmagic is not
    available; callers then fall back to extension lookups.
    """
    if not data:
        return None
    known = _match_signature(data)
    if known is not None:
        return known
    try:
        import magic

        detected = magic.from_buffer(data[:8192], mime=True)
    except (ImportError, Exception) as e:
        logger.debug("Content-based MIME detection unavailable: %s", e)
        return None
    return normalize_mime(detected)
