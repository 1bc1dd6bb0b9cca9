"""Canonical forms for equality testing of tracked files.

Normalised output is only ever compared, never written back or shown.

* JSON files are parsed and re-encoded with sorted keys and compact
  separators, so key order and formatting never matter.
* Anything that fails to parse (including the editor's JSON-with-comments
  files, whose comments must not be silently dropped), and every opaque
  file, falls back to the content with all whitespace characters removed.
"""

from __future__ import annotations

import json
import re

from .models import FileKind

_WHITESPACE = re.compile(r"\s+")
_BOM = "\ufeff"


def strip_whitespace(content: str) -> str:
    """Remove every whitespace character from *content*."""
    return _WHITESPACE.sub("", content)


def squash_lines(content: str) -> list[str]:
    """Return the stripped, non-blank lines of *content*.

    Used as the cheap first comparison: two files whose squashed lines
    match differ only in indentation, line endings or blank lines.
    """
    lines = content.lstrip(_BOM).splitlines()
    return [line.strip() for line in lines if line.strip()]


def canonical_json(content: str) -> str:
    """Parse JSON *content* and return its canonical encoding.

    Raises:
        ValueError: If the content is not valid JSON.
    """
    data = json.loads(content.lstrip(_BOM))
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def normalize(content: str, kind: FileKind) -> bytes:
    """Return the canonical byte form of *content* for *kind*.

    Pure function.  Two inputs that differ only in formatting (and, for
    parseable JSON, key order) produce identical output.
    """
    if kind == FileKind.JSON:
        try:
            return canonical_json(content).encode("utf-8")
        except ValueError:
            pass
    return strip_whitespace(content.lstrip(_BOM)).encode("utf-8")


def contents_equivalent(a: str, b: str, kind: FileKind) -> bool:
    """True when *a* and *b* normalise to the same bytes."""
    return normalize(a, kind) == normalize(b, kind)
