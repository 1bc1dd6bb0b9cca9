"""File handler module: encoding-aware read, atomic write, mirror copies.

The editor's settings files are usually UTF-8 but may carry a BOM or a
legacy code page on Windows, so reads go through charset-normalizer.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def read_text(path: Path) -> str:
    """Return the decoded content of *path*."""
    content, _ = read_file_with_encoding(path)
    return content


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content atomically, creating parent directories as needed.

    Writes to a temporary file in the same directory, then replaces the
    target so readers never observe a partial file.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


# =============================================================================
# Mirror copies
# =============================================================================


def same_file(a: Path, b: Path) -> bool:
    """True when *a* and *b* resolve to the same file (e.g. via symlink)."""
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False


def copy_file(src: Path, dst: Path) -> bool:
    """Copy *src* over *dst*, preserving metadata.

    A no-op when both paths already point at the same file, which is the
    normal state once the installer has symlinked the editor's settings
    into the mirror.

    Returns:
        True if bytes were copied.
    """
    if same_file(src, dst):
        return False
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    return True
