"""Scoped timings and counters for paste interactions.

Disabled unless ``PASTE_UPLOAD_TELEMETRY=1`` is set *and* reporters are
supplied; otherwise `TelemetryContext` hands back one shared no-op object, so
instrumented code pays almost nothing. Enabled scopes nest through a context
variable, which keeps concurrent interactions on one event loop apart::

    tele = TelemetryContext(MemoryReporter())
    with tele("upload.file", mime="image/png"):
        tele.count("cache_hit")   # -> "upload.file.cache_hit"
"""

from collections import deque
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

TELEMETRY_ENV = "PASTE_UPLOAD_TELEMETRY"

_active_scopes: ContextVar[tuple[str, ...]] = ContextVar(
    "paste_upload_active_scopes", default=()
)


def telemetry_enabled() -> bool:
    return os.getenv(TELEMETRY_ENV) == "1"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Receives finished scope timings and counter increments."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        pass


class _EnabledTelemetryContext:
    """Fans scope timings and counters out to every reporter."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter) -> None:
        self.reporters = reporters

    def __call__(
        self, name: str, **metadata: Any
    ) -> AbstractContextManager["_EnabledTelemetryContext"]:
        if not name or not isinstance(name, str):
            raise ValueError("Scope name must be a non-empty string")
        return self._scope(name, metadata)

    @contextmanager
    def _scope(
        self, name: str, metadata: dict[str, Any]
    ) -> Iterator["_EnabledTelemetryContext"]:
        parents = _active_scopes.get()
        token = _active_scopes.set((*parents, name))
        started = time.perf_counter()
        try:
            yield self
        finally:
            elapsed = time.perf_counter() - started
            _active_scopes.reset(token)
            self._dispatch(
                "record_timing",
                ".".join((*parents, name)),
                elapsed,
                depth=len(parents),
                **metadata,
            )

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        """Add `increment` to a counter named relative to the open scope."""
        path = ".".join((*_active_scopes.get(), name))
        self._dispatch("record_metric", path, increment, metric_type="counter", **metadata)

    def _dispatch(self, method: str, scope: str, value: Any, **metadata: Any) -> None:
        # A broken reporter must never fail an upload
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )


_NO_OP = _NoOpTelemetryContext()

TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(*reporters: TelemetryReporter) -> TelemetryContextProtocol:  # noqa: N802
    """Return an enabled context, or the shared no-op when telemetry is off."""
    if reporters and telemetry_enabled():
        return _EnabledTelemetryContext(*reporters)
    return _NO_OP


class LoggingReporter:
    """Writes each timing and counter to a logger at DEBUG level."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or log

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self._log.debug("%s took %.1f ms %s", scope, duration * 1000, metadata or "")

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self._log.debug("%s += %s", scope, value)


class MemoryReporter:
    """Keeps the most recent samples per scope in memory."""

    def __init__(self, max_entries_per_scope: int = 1000) -> None:
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque[tuple[float, dict[str, Any]]]] = {}
        self.metrics: dict[str, deque[tuple[Any, dict[str, Any]]]] = {}

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self._samples(self.timings, scope).append((duration, metadata))

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self._samples(self.metrics, scope).append((value, metadata))

    def _samples(self, table: dict[str, deque], scope: str) -> deque:
        if scope not in table:
            table[scope] = deque(maxlen=self.max_entries)
        return table[scope]

    def get_report(self) -> str:
        """One line per scope: call count and mean duration, then counters."""
        lines = ["=== Upload Telemetry ==="]
        for scope, samples in sorted(self.timings.items()):
            durations = [d for d, _ in samples]
            mean_ms = 1000 * sum(durations) / len(durations)
            lines.append(f"{scope:<32} calls={len(durations):<5} mean={mean_ms:.1f}ms")
        for scope, samples in sorted(self.metrics.items()):
            total = sum(v for v, _ in samples if isinstance(v, int | float))
            lines.append(f"{scope:<32} total={total:,}")
        return "\n".join(lines)
