"""``${token}`` substitution shared by key prefixes, URL bases and snippets."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
import re

_TOKEN_RE = re.compile(r"\$\{(\w+)\}")


def substitute(template: str, values: Mapping[str, str]) -> str:
    """Replace every known ``${name}`` token; unknown tokens are left as-is."""

    def _replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return _TOKEN_RE.sub(_replace, template)


def date_tokens(now: datetime, basename: str = "") -> dict[str, str]:
    """Tokens for path templates: zero-padded date parts and the file name."""
    return {
        "year": f"{now.year:04d}",
        "month": f"{now.month:02d}",
        "day": f"{now.day:02d}",
        "basename": basename,
    }
