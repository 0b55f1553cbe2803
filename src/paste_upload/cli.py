"""Headless command line front end.

Implements the editor ports on a terminal so the pipeline can be driven
without an editor:

    python -m paste_upload upload PATH_OR_URL... [--scope markdown]
    python -m paste_upload test-connection [--scope markdown]
    python -m paste_upload clear-cache
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys
from urllib.parse import urlparse

from paste_upload import __version__
from paste_upload.cache import JSONFileStore
from paste_upload.config import resolve_config
from paste_upload.config.types import ResolvedConfig
from paste_upload.core.exceptions import ConfigurationError
from paste_upload.core.types import RawPayload
from paste_upload.orchestrator import UploadOrchestrator
from paste_upload.telemetry import LoggingReporter, TelemetryContext

# ruff: noqa: T201

log = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path.home() / ".cache" / "paste_upload" / "state.json"
STDOUT_DOCUMENT = "stdout:"


class ConsoleUser:
    """Messages go to the log; questions are asked on stdin."""

    def __init__(self, *, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes

    def info(self, message: str) -> None:
        log.info(message)

    def warn(self, message: str) -> None:
        log.warning(message)

    def error(self, message: str) -> None:
        log.error(message)

    async def confirm(self, message: str) -> bool:
        if self.assume_yes:
            return True
        answer = await self._ask(f"{message} [y/N] ")
        return answer is not None and answer.strip().lower() in ("y", "yes")

    async def input_text(self, prompt: str, default: str = "") -> str | None:
        suffix = f" [{default}]" if default else ""
        answer = await self._ask(f"{prompt}{suffix}: ")
        if answer is None:
            return None
        return answer.strip() or default or None

    async def pick(self, title: str, items: Sequence[str]) -> int | None:
        print(title, file=sys.stderr)
        for index, item in enumerate(items, start=1):
            print(f"  {index}. {item}", file=sys.stderr)
        answer = await self._ask("Choice (empty to cancel): ")
        if not answer or not answer.strip().isdigit():
            return None
        choice = int(answer.strip()) - 1
        return choice if 0 <= choice < len(items) else None

    async def _ask(self, prompt: str) -> str | None:
        print(prompt, end="", file=sys.stderr, flush=True)
        line = await asyncio.to_thread(sys.stdin.readline)
        return line.rstrip("\n") if line else None


class LocalEditor:
    """The current directory is the workspace; the snippet is printed."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or Path.cwd()).resolve()

    def workspace_root(self, document_uri: str) -> Path | None:  # noqa: ARG002
        return self.root

    def workspace_folders(self) -> Sequence[Path]:
        # Files named on the command line are uploaded even inside the root
        return ()

    async def replace_selection(self, document_uri: str, text: str) -> bool:  # noqa: ARG002
        print(text)
        return True

    async def create_file(self, path: Path, data: bytes) -> None:
        await asyncio.to_thread(_write_file, path, data)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def to_uri(target: str) -> str:
    """Pass URLs through; turn local paths into ``file:`` URIs."""
    if urlparse(target).scheme in ("http", "https", "file", "data"):
        return target
    return Path(target).expanduser().resolve().as_uri()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Upload files and print reference snippets",
        prog="python -m paste_upload",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument(
        "--state",
        type=Path,
        default=DEFAULT_STATE_FILE,
        help="JSON file holding the upload cache",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload files or URLs")
    upload.add_argument("targets", nargs="+", metavar="PATH_OR_URL")
    upload.add_argument("--scope", help="Scope (e.g. document language)")
    upload.add_argument(
        "-y", "--yes", action="store_true", help="Answer yes to every prompt"
    )

    test = sub.add_parser("test-connection", help="Probe the S3 destination")
    test.add_argument("--scope", help="Scope (e.g. document language)")

    sub.add_parser("clear-cache", help="Forget every cached upload")
    return parser


async def run(args: argparse.Namespace) -> int:
    def settings_provider(scope: str | None) -> ResolvedConfig:
        return resolve_config(scope=scope)

    orchestrator = UploadOrchestrator(
        settings_provider,
        ui=ConsoleUser(assume_yes=getattr(args, "yes", False)),
        editor=LocalEditor(),
        store=JSONFileStore(args.state),
        telemetry=TelemetryContext(LoggingReporter(log)),
        version=__version__,
    )
    match args.command:
        case "upload":
            payload = RawPayload.from_uris(*(to_uri(t) for t in args.targets))
            text = await orchestrator.handle_payload(
                payload, document_uri=STDOUT_DOCUMENT, scope=args.scope
            )
            return 0 if text is not None else 1
        case "test-connection":
            return 0 if await orchestrator.test_connection(args.scope) else 1
        case "clear-cache":
            orchestrator.clear_cache()
            return 0
    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
