"""CLI entry point for configuration introspection.

Usage:
    python -m paste_upload.config
    python -m paste_upload.config --scope markdown
    python -m paste_upload.config --json
    python -m paste_upload.config --check
"""

import argparse
import json
import sys

from .api import config_warnings, get_config_info, resolve_config

# ruff: noqa: T201


def main(argv: list[str] | None = None) -> int:
    """Print the effective configuration with the origin of each value."""
    parser = argparse.ArgumentParser(
        description="Inspect paste-upload configuration",
        prog="python -m paste_upload.config",
    )
    parser.add_argument("--scope", help="Scope (e.g. document language) to resolve")
    parser.add_argument(
        "--json", action="store_true", help="Output as JSON instead of text"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only check validity (exit code 0=valid, 1=invalid)",
    )
    args = parser.parse_args(argv)

    if args.json:
        info = get_config_info(scope=args.scope)
        print(json.dumps(info, indent=2))
        return 0 if info["status"] == "valid" else 1

    try:
        resolved = resolve_config(scope=args.scope)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    if args.check:
        return 0

    print("=== Effective Configuration ===")
    print(resolved.audit())
    warnings = config_warnings(resolved)
    if warnings:
        print("\nWarnings:")
        for warning in warnings:
            print(f"  - {warning}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
