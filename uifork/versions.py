"""Parsing, validation and ordering of version keys."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_CANONICAL_PATTERN = re.compile(r"^v(\d+)(?:_(\d+))?$")


@dataclass(frozen=True)
class VersionKey:
    """Canonical ``v<major>[_<minor>]`` identifier for one implementation."""

    major: int
    minor: Optional[int] = None

    def __str__(self) -> str:
        if self.minor is None:
            return f"v{self.major}"
        return f"v{self.major}_{self.minor}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionKey):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def sort_key(self) -> tuple[int, int, int]:
        # v1 sorts before v1_0 so the order stays total.
        return (self.major, self.minor or 0, 0 if self.minor is None else 1)

    @property
    def file_token(self) -> str:
        """The key without its ``v`` prefix, as used in import suffixes."""
        return str(self)[1:]

    @property
    def display(self) -> str:
        """Human label such as ``V1.2``."""
        return "V" + self.file_token.replace("_", ".")


def normalize_version(raw: object) -> VersionKey | None:
    """Return the canonical key for user input such as ``2.2``, ``V3`` or ``v1_4``.

    Returns ``None`` for anything that cannot be read as a version.
    """
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if text[:1] in {"v", "V"}:
        text = text[1:]
    text = text.replace(".", "_")
    match = _CANONICAL_PATTERN.match(f"v{text}")
    if match is None:
        return None
    major = int(match.group(1))
    minor = int(match.group(2)) if match.group(2) is not None else None
    return VersionKey(major=major, minor=minor)


def compare_versions(a: VersionKey, b: VersionKey) -> int:
    """Numeric three-way comparison; an absent minor counts as zero."""
    left = (a.major, a.minor or 0)
    right = (b.major, b.minor or 0)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


__all__ = ["VersionKey", "compare_versions", "normalize_version"]
