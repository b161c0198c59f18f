"""Resolve the component references accepted on the command line."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from .errors import ComponentNotFound
from .models import INDEX_SUFFIX
from .scanner import is_excluded_dir_name, parse_version_filename


def locate_component(reference: str, cwd: Path | None = None) -> Tuple[Path, str]:
    """Return ``(directory, component name)`` for a path or bare component name.

    Accepts the generated index, a version file, the wrapper file, a directory
    holding one versioned component, or a name searched for below ``cwd``.
    """
    base = (cwd or Path.cwd()).resolve()
    candidate = Path(reference).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate

    if candidate.is_file():
        found = _from_file(candidate.resolve())
        if found is not None:
            return found
    elif candidate.is_dir():
        found = _from_directory(candidate.resolve())
        if found is not None:
            return found

    if "/" not in reference and "\\" not in reference:
        found = _search_by_name(base, reference)
        if found is not None:
            return found

    raise ComponentNotFound(f"Component not found: {reference}")


def _from_file(path: Path) -> Optional[Tuple[Path, str]]:
    if path.name.endswith(INDEX_SUFFIX):
        return path.parent, path.name[: -len(INDEX_SUFFIX)]
    parsed = parse_version_filename(path.name)
    if parsed is not None:
        return path.parent, parsed[0]
    if _has_versions(path.parent, path.stem):
        return path.parent, path.stem
    return None


def _from_directory(directory: Path) -> Optional[Tuple[Path, str]]:
    indexes = sorted(entry.name for entry in directory.iterdir() if entry.name.endswith(INDEX_SUFFIX))
    if indexes:
        return directory, indexes[0][: -len(INDEX_SUFFIX)]
    names = sorted(
        {parsed[0] for parsed in map(parse_version_filename, os.listdir(directory)) if parsed}
    )
    if len(names) == 1:
        return directory, names[0]
    return None


def _search_by_name(root: Path, name: str) -> Optional[Tuple[Path, str]]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not is_excluded_dir_name(d))
        if f"{name}{INDEX_SUFFIX}" in filenames or any(
            (parsed := parse_version_filename(filename)) and parsed[0] == name
            for filename in filenames
        ):
            return Path(dirpath), name
    return None


def _has_versions(directory: Path, name: str) -> bool:
    for filename in os.listdir(directory):
        parsed = parse_version_filename(filename)
        if parsed is not None and parsed[0] == name:
            return True
    return False


__all__ = ["locate_component"]
