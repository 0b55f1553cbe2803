"""Ports the host editor implements.

The pipeline never talks to an editor, a terminal, or a notification system
directly. It calls these narrow protocols instead, which keeps every stage
testable with small fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from types import TracebackType
from typing import Protocol, runtime_checkable


@runtime_checkable
class UserPort(Protocol):
    """User-facing notifications and prompts."""

    def info(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    async def confirm(self, message: str) -> bool:
        """Ask a yes/no question; anything but an explicit yes is False."""
        ...

    async def input_text(self, prompt: str, default: str = "") -> str | None:
        """Ask for free text; None when the user cancels."""
        ...

    async def pick(self, title: str, items: Sequence[str]) -> int | None:
        """Let the user choose one item; returns its index or None."""
        ...


class ProgressHandle(Protocol):
    """A live progress indicator."""

    @property
    def cancelled(self) -> bool: ...

    def report(self, increment: float, message: str | None = None) -> None: ...


@runtime_checkable
class ProgressPort(Protocol):
    """Factory for cancellable progress indicators."""

    def progress(
        self, title: str, *, cancellable: bool = True
    ) -> AbstractAsyncContextManager[ProgressHandle]: ...


@runtime_checkable
class EditorPort(Protocol):
    """Document and workspace access supplied by the editor."""

    def workspace_root(self, document_uri: str) -> Path | None: ...

    def workspace_folders(self) -> Sequence[Path]: ...

    async def replace_selection(self, document_uri: str, text: str) -> bool:
        """Apply a single text replacement; False when the edit was rejected."""
        ...

    async def create_file(self, path: Path, data: bytes) -> None: ...


class _NullHandle:
    cancelled = False

    def report(self, increment: float, message: str | None = None) -> None:
        pass


class NullProgress:
    """Progress port that shows nothing and never cancels."""

    def progress(self, title: str, *, cancellable: bool = True) -> _NullScope:  # noqa: ARG002
        return _NullScope()


class _NullScope:
    async def __aenter__(self) -> _NullHandle:
        return _NullHandle()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

