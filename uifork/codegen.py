"""Rendering of the generated ``<Component>.versions.ts`` index."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import RegenerationFailure
from .fileops import atomic_write_text, read_text_if_exists
from .logging import get_logger
from .models import Component
from .naming import version_identifier
from .versions import VersionKey, normalize_version

_STRING_OR_BRACE = re.compile(r""""(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[{}]""")
_BLOCK_KEY = re.compile(r"""["']?(v[0-9_.]+)["']?\s*:\s*$""")
_LABEL_PATTERN = re.compile(
    r"""(?:^|[{,])\s*label\s*:\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""", re.MULTILINE
)
_DESCRIPTION_PATTERN = re.compile(
    r"""(?:^|[{,])\s*description\s*:\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""", re.MULTILINE
)


@dataclass
class IndexEntry:
    """Label metadata recovered from an existing index file."""

    label: str
    description: Optional[str] = None


class IndexGenerator:
    """Renders a deterministic index file from a Component."""

    def __init__(self, *, lazy: bool = False) -> None:
        self.lazy = lazy
        self.logger = get_logger("codegen")

    def render(self, component: Component) -> str:
        header = [
            "/**",
            " * THIS FILE IS GENERATED by uifork.",
            " * Manual edits to labels/descriptions are preserved, but structure changes may be overwritten.",
            f" * To stop versioning this component, run: uifork promote {component.name} <version-id>",
            " */",
        ]

        imports: List[str] = []
        entries: List[str] = []
        for version in component.ordered():
            identifier = version_identifier(component.name, version.key)
            module = f"./{version.path.stem}"
            if self.lazy:
                imports.append(f"const {identifier} = lazy(() => import({json.dumps(module)}))")
            else:
                imports.append(f"import {identifier} from {json.dumps(module)}")

            block = [
                f"  {json.dumps(str(version.key))}: {{",
                f"    render: {identifier},",
                f"    label: {json.dumps(version.label)},",
            ]
            if version.description:
                block.append(f"    description: {json.dumps(version.description)},")
            block.append("  },")
            entries.extend(block)

        lines = list(header)
        if self.lazy:
            lines.append('import { lazy } from "react"')
            lines.append("")
        lines.extend(imports)
        lines.append("")
        lines.append("export const VERSIONS = {")
        lines.extend(entries)
        lines.append("}")
        return "\n".join(lines) + "\n"

    def write(self, component: Component) -> bool:
        """Write the index if its content changed; return True when the file was replaced."""
        content = self.render(component)
        path = component.index_path
        try:
            if read_text_if_exists(path) == content:
                return False
            atomic_write_text(path, content)
        except OSError as exc:
            raise RegenerationFailure(
                f"Failed to write {path.name}: {exc}"
            ) from exc
        self.logger.info(
            "[%s] Generated versions file with %d versions",
            component.name,
            len(component.versions),
        )
        return True


def read_index_entries(index_path: Path) -> Dict[VersionKey, IndexEntry]:
    """Parse labels and descriptions out of an existing index; missing files yield ``{}``."""
    try:
        content = index_path.read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError):
        return {}
    except (OSError, UnicodeDecodeError):
        get_logger("codegen").warning("Could not read %s; labels reset", index_path)
        return {}

    _, marker, body = content.partition("export const VERSIONS")
    if not marker:
        return {}

    entries: Dict[VersionKey, IndexEntry] = {}
    for raw_key, block in _iter_version_blocks(body):
        key = normalize_version(raw_key)
        if key is None:
            continue
        label_match = _LABEL_PATTERN.search(block)
        description_match = _DESCRIPTION_PATTERN.search(block)
        entries[key] = IndexEntry(
            label=_decode_string(label_match.group(1)) if label_match else key.display,
            description=_decode_string(description_match.group(1)) if description_match else None,
        )
    return entries


def _iter_version_blocks(body: str) -> Iterator[Tuple[str, str]]:
    """Yield ``(raw key, block text)`` for each second-level object literal.

    Braces inside string literals are skipped, so labels may contain ``{`` or ``}``.
    """
    depth = 0
    key_search_from = 0
    block_start = 0
    raw_key: Optional[str] = None
    for match in _STRING_OR_BRACE.finditer(body):
        token = match.group(0)
        if token == "{":
            depth += 1
            if depth == 1:
                key_search_from = match.end()
            elif depth == 2:
                key_match = _BLOCK_KEY.search(body, key_search_from, match.start())
                raw_key = key_match.group(1) if key_match else None
                block_start = match.end()
        elif token == "}":
            if depth == 2 and raw_key is not None:
                yield raw_key, body[block_start : match.start()]
            if depth == 2:
                key_search_from = match.end()
            depth -= 1
            if depth <= 0:
                return


def _decode_string(literal: str) -> str:
    if literal.startswith("'"):
        return literal[1:-1]
    try:
        value = json.loads(literal)
    except json.JSONDecodeError:
        return literal[1:-1]
    return value if isinstance(value, str) else literal[1:-1]


__all__ = ["IndexEntry", "IndexGenerator", "read_index_entries"]
