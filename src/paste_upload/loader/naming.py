"""File naming: generated names and batch de-duplication."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
import secrets
from typing import TYPE_CHECKING
import uuid

if TYPE_CHECKING:
    from paste_upload.config.schema import FileNamingMethod
    from paste_upload.hashing import Hasher
    from paste_upload.ports import UserPort

# Name editors give to anonymous clipboard images
GENERIC_NAME = "image"

NANOID_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
NANOID_SIZE = 21
SHORT_HASH_LENGTH = 8


def nanoid(size: int = NANOID_SIZE) -> str:
    """Random URL-safe identifier."""
    return "".join(secrets.choice(NANOID_ALPHABET) for _ in range(size))


def iso_timestamp(now: datetime) -> str:
    """UTC ISO 8601 timestamp that is safe to use in file names."""
    stamp = now.astimezone(UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def needs_generated_name(name: str | None, *, always_generate: bool) -> bool:
    return always_generate or not name or name == GENERIC_NAME


class NameGenerator:
    """Synthesizes names by the configured method."""

    def __init__(
        self,
        method: FileNamingMethod,
        *,
        hasher: Hasher,
        ui: UserPort,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.method = method
        self._hasher = hasher
        self._ui = ui
        self._clock = clock or (lambda: datetime.now(UTC))

    async def generate(self, data: bytes, current: str | None = None) -> str | None:
        """Return a generated name; None or empty means the file is dropped."""
        match self.method:
            case "content-hash":
                return await asyncio.to_thread(self._hasher.hash, data)
            case "content-hash-short":
                digest = await asyncio.to_thread(self._hasher.hash, data)
                return digest[:SHORT_HASH_LENGTH]
            case "uuid":
                return str(uuid.uuid4())
            case "nanoid":
                return nanoid()
            case "timestamp":
                return str(int(self._clock().timestamp()))
            case "iso-timestamp":
                return iso_timestamp(self._clock())
            case "prompt":
                answer = await self._ui.input_text(
                    "Enter a file name", default=current or ""
                )
                return answer.strip() if answer else None
            case _:
                raise ValueError(f"Unknown file naming method: {self.method!r}")


def deduplicate(names: Iterable[str]) -> list[str]:
    """Suffix repeated names with ``.1``, ``.2``, ... until unique.

    >>> deduplicate(["a", "a", "a"])
    ['a', 'a.1', 'a.2']
    """
    seen: set[str] = set()
    unique: list[str] = []
    for name in names:
        candidate = name
        counter = 1
        while candidate in seen:
            candidate = f"{name}.{counter}"
            counter += 1
        seen.add(candidate)
        unique.append(candidate)
    return unique
