"""Content fingerprinting for upload deduplication.

The fingerprint is only a cache key: it needs to be stable and cheap, not
collision-proof against an adversary. Selection happens once per process:

1. an external fast hashing tool on ``PATH`` (probed with ``--version``),
2. the first available ``hashlib`` algorithm from a preference list,
3. ``hashlib.sha256`` as the reference implementation.

A tool that fails at call time degrades that call to the next tier; hashing
never fails an upload.
"""

from __future__ import annotations

from dataclasses import dataclass
import functools
import hashlib
import logging
import shutil
import subprocess
from typing import Literal

logger = logging.getLogger(__name__)

HASH_TOOLS: tuple[str, ...] = ("xxh128sum", "xxh64sum", "xxhsum", "b3sum")
HASHLIB_PREFERENCE: tuple[str, ...] = ("blake2b", "blake2s", "sha1", "md5")
REFERENCE_ALGORITHM = "sha256"

PROBE_TIMEOUT = 2.0  # seconds
TOOL_TIMEOUT = 30.0  # seconds


@dataclass(frozen=True, slots=True)
class HashTier:
    """The hashing strategy a `Hasher` uses."""

    kind: Literal["tool", "hashlib", "reference"]
    name: str
    path: str | None = None


def probe_tool(names: tuple[str, ...] = HASH_TOOLS) -> HashTier | None:
    """Return the first external hash tool that answers ``--version``."""
    for name in names:
        path = shutil.which(name)
        if path is None:
            continue
        try:
            completed = subprocess.run(  # noqa: S603
                [path, "--version"],
                capture_output=True,
                timeout=PROBE_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Hash tool probe failed for %s: %s", name, e)
            continue
        if completed.returncode == 0:
            return HashTier(kind="tool", name=name, path=path)
    return None


def select_hashlib_algorithm(
    preference: tuple[str, ...] = HASHLIB_PREFERENCE,
) -> HashTier:
    """Return the first preferred algorithm that hashlib offers here."""
    available = {a.lower() for a in hashlib.algorithms_available}
    for name in preference:
        if name in available:
            return HashTier(kind="hashlib", name=name)
    return HashTier(kind="reference", name=REFERENCE_ALGORITHM)


class Hasher:
    """Computes hex fingerprints using a fixed selection of tiers."""

    def __init__(
        self,
        tool: HashTier | None = None,
        algorithm: HashTier | None = None,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize with an optional tool tier and a hashlib tier.

        Args:
            tool: External tool tier, or None when no tool is available.
            algorithm: In-process tier; defaults to the hashlib preference list.
            log: Logger used to report degraded calls.
        """
        self._tool = tool
        self._algorithm = algorithm or select_hashlib_algorithm()
        self._log = log or logger

    @property
    def tier(self) -> HashTier:
        """The preferred tier for this hasher."""
        return self._tool or self._algorithm

    def hash(self, data: bytes) -> str:
        """Return the lowercase hex fingerprint of `data`."""
        if self._tool is not None:
            try:
                return self._hash_with_tool(self._tool, data)
            except (OSError, subprocess.SubprocessError, ValueError) as e:
                self._log.warning(
                    "Hash tool %s failed (%s); falling back to %s",
                    self._tool.name,
                    e,
                    self._algorithm.name,
                )
        return self._hash_in_process(self._algorithm, data)

    def _hash_with_tool(self, tier: HashTier, data: bytes) -> str:
        completed = subprocess.run(  # noqa: S603
            [tier.path or tier.name],
            input=bytes(data),
            capture_output=True,
            timeout=TOOL_TIMEOUT,
            check=True,
        )
        output = completed.stdout.decode("ascii", errors="replace").split()
        if not output:
            raise ValueError("empty output")
        return output[0].lower()

    def _hash_in_process(self, tier: HashTier, data: bytes) -> str:
        try:
            return hashlib.new(tier.name, bytes(data)).hexdigest()
        except ValueError as e:
            self._log.warning(
                "hashlib algorithm %s unavailable (%s); using %s",
                tier.name,
                e,
                REFERENCE_ALGORITHM,
            )
            return hashlib.sha256(bytes(data)).hexdigest()


@functools.cache
def get_hasher() -> Hasher:
    """Return the process-wide hasher, selecting tiers on first use."""
    hasher = Hasher(probe_tool(), select_hashlib_algorithm())
    logger.debug("Selected hash tier: %s", hasher.tier)
    return hasher
