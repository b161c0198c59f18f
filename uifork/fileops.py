"""Small filesystem helpers with replace-on-success semantics."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write ``content`` to a sibling temp file, then ``os.replace`` it into place."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def atomic_write_text(path: Path, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))


def read_text_if_exists(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def read_bytes_if_exists(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def restore_bytes(path: Path, content: bytes | None) -> None:
    """Put ``path`` back to a captured state; ``None`` means the file did not exist."""
    if content is None:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
        return
    if read_bytes_if_exists(path) == content:
        return
    atomic_write_bytes(path, content)


__all__ = [
    "atomic_write_bytes",
    "atomic_write_text",
    "read_bytes_if_exists",
    "read_text_if_exists",
    "restore_bytes",
]
