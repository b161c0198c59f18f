"""Identifier helpers shared by the generator and the file templates."""

from __future__ import annotations

import re

from .versions import VersionKey

_CHUNK_PATTERN = re.compile(r"[A-Za-z0-9]+")
_IDENTIFIER_START = re.compile(r"^[A-Za-z_$]")


def to_pascal_case_identifier(name: str) -> str:
    chunks = _CHUNK_PATTERN.findall(name or "")
    identifier = "".join(chunk[:1].upper() + chunk[1:] for chunk in chunks)
    if not identifier:
        return "Component"
    if not _IDENTIFIER_START.match(identifier):
        return f"Component{identifier}"
    return identifier


def version_identifier(component_name: str, key: VersionKey) -> str:
    """Return the symbol a version file exports, e.g. ``ButtonV1_2``."""
    return f"{to_pascal_case_identifier(component_name)}V{key.file_token}"


__all__ = ["to_pascal_case_identifier", "version_identifier"]
