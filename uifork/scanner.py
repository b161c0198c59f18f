"""Discovery of version files and construction of Registry entries."""

from __future__ import annotations

import os
import re
from collections import Counter
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .codegen import read_index_entries
from .logging import get_logger
from .models import Component, Registry, VersionFile
from .versions import VersionKey, normalize_version

VERSION_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")

_VERSION_FILENAME = re.compile(
    r"^(?P<name>[^.]+)\.(?P<raw>[vV][0-9][0-9._]*)(?P<ext>\.(?:tsx|ts|jsx|js))$"
)

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "node_modules",
    "__pycache__",
    "dist",
    "build",
}


@dataclass(frozen=True)
class _DirPattern:
    glob: str
    rooted: bool
    negated: bool

    def hits(self, rel_dir: str) -> bool:
        if self.rooted:
            return fnmatchcase(rel_dir, self.glob) or rel_dir.startswith(f"{self.glob}/")
        return any(fnmatchcase(part, self.glob) for part in rel_dir.split("/"))


def _compile_pattern(raw: str) -> Optional[_DirPattern]:
    text = raw.strip()
    negated = text.startswith("!")
    if negated:
        text = text[1:]
    text = text.rstrip("/")
    if not text:
        return None
    # Patterns with a slash are relative to the root, bare names match at any depth.
    return _DirPattern(glob=text.lstrip("/"), rooted="/" in text, negated=negated)


class DirectoryFilter:
    """Decides which directories below a root are never scanned or watched.

    Dot-directories and build output are always skipped. ``.gitignore`` lines and
    ``watch.exclude_paths`` add to that; a later ``!pattern`` re-includes.
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._patterns = [
            pattern for pattern in map(_compile_pattern, patterns) if pattern is not None
        ]

    @classmethod
    def for_root(cls, root: Path, exclude_paths: Sequence[str] = ()) -> "DirectoryFilter":
        patterns: List[str] = []
        gitignore = root / ".gitignore"
        if gitignore.is_file():
            for line in gitignore.read_text(encoding="utf-8").splitlines():
                if line.strip() and not line.lstrip().startswith("#"):
                    patterns.append(line)
        patterns.extend(exclude_paths)
        return cls(patterns)

    def excludes(self, rel_dir: str) -> bool:
        """``rel_dir`` is POSIX-style and relative to the root; ``""`` is the root itself."""
        if not rel_dir:
            return False
        if any(is_excluded_dir_name(part) for part in rel_dir.split("/")):
            return True
        excluded = False
        for pattern in self._patterns:
            if pattern.hits(rel_dir):
                excluded = not pattern.negated
        return excluded


def is_excluded_dir_name(name: str) -> bool:
    return name.startswith(".") or name in _EXCLUDED_DIRS


def parse_version_filename(filename: str) -> Optional[Tuple[str, str, str]]:
    """Split ``Button.v1_2.tsx`` into ``("Button", "v1_2", ".tsx")``."""
    match = _VERSION_FILENAME.match(filename)
    if match is None:
        return None
    return match.group("name"), match.group("raw"), match.group("ext")


class DirectoryScanner:
    """Reads directories and groups matching version files by component."""

    def __init__(self) -> None:
        self.logger = get_logger("scanner")

    def scan(self, directory: Path | str) -> Registry:
        """Return a Registry holding every component found directly in ``directory``."""
        directory_path = Path(directory).expanduser().resolve()
        if not directory_path.exists():
            raise FileNotFoundError(f"Directory not found: {directory}")
        if not directory_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {directory}")

        grouped: Dict[str, Dict[VersionKey, Path]] = {}
        for path in sorted(directory_path.iterdir(), key=lambda item: item.name):
            parsed = parse_version_filename(path.name)
            if parsed is None or not path.is_file():
                continue
            name, raw_key, _ = parsed
            key = normalize_version(raw_key)
            if key is None:
                self.logger.debug("Skipping %s: unreadable version key %r", path.name, raw_key)
                continue
            files = grouped.setdefault(name, {})
            if key in files:
                self.logger.warning(
                    "Skipping %s: %s already provides %s", path.name, files[key].name, key
                )
                continue
            files[key] = path

        components = {
            name: self._build_component(directory_path, name, files)
            for name, files in grouped.items()
        }
        return Registry(components)

    def scan_component(self, directory: Path | str, name: str) -> Optional[Component]:
        return self.scan(directory).get(name)

    def discover(self, root: Path | str, exclude_paths: Sequence[str] = ()) -> Registry:
        """Walk ``root`` and merge every directory's components into one Registry."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {root}")
        dir_filter = DirectoryFilter.for_root(root_path, exclude_paths)

        merged: Dict[str, Component] = {}
        for directory in self._iter_candidate_dirs(root_path, dir_filter):
            for component in self.scan(directory):
                existing = merged.get(component.name)
                if existing is not None:
                    self.logger.warning(
                        "Skipping %s in %s: already tracked in %s",
                        component.name,
                        component.directory,
                        existing.directory,
                    )
                    continue
                merged[component.name] = component
        self.logger.debug("Discovered %d versioned component(s) under %s", len(merged), root_path)
        return Registry(merged)

    def _iter_candidate_dirs(self, root: Path, dir_filter: DirectoryFilter) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            kept = []
            for name in sorted(dirnames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if dir_filter.excludes(rel_path):
                    continue
                kept.append(name)
            dirnames[:] = kept

            if any(parse_version_filename(filename) for filename in filenames):
                yield current_dir

    def _build_component(
        self, directory: Path, name: str, files: Dict[VersionKey, Path]
    ) -> Component:
        component = Component(
            name=name,
            directory=directory,
            extension=_dominant_extension(files.values()),
        )
        entries = read_index_entries(component.index_path)
        for key in sorted(files):
            entry = entries.get(key)
            component.versions[key] = VersionFile(
                key=key,
                path=files[key],
                label=entry.label if entry is not None else key.display,
                description=entry.description if entry is not None else None,
            )
        return component


def _dominant_extension(paths) -> str:
    counts = Counter(path.suffix for path in paths)
    if not counts:
        return ".tsx"
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0]


__all__ = [
    "DirectoryFilter",
    "DirectoryScanner",
    "VERSION_EXTENSIONS",
    "is_excluded_dir_name",
    "parse_version_filename",
]
