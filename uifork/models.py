"""Core data models shared across uifork components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .errors import ComponentNotFound
from .versions import VersionKey

INDEX_SUFFIX = ".versions.ts"


@dataclass
class VersionFile:
    """One implementation of a component on disk."""

    key: VersionKey
    path: Path
    label: str
    description: Optional[str] = None


@dataclass
class Component:
    """A versioned component and the files that back it."""

    name: str
    directory: Path
    extension: str
    versions: Dict[VersionKey, VersionFile] = field(default_factory=dict)

    @property
    def index_path(self) -> Path:
        return self.directory / f"{self.name}{INDEX_SUFFIX}"

    def keys(self) -> List[VersionKey]:
        return sorted(self.versions)

    def ordered(self) -> List[VersionFile]:
        return [self.versions[key] for key in self.keys()]

    def highest_major(self) -> int:
        return max((key.major for key in self.versions), default=0)

    def highest_minor(self, major: int) -> int:
        return max(
            (key.minor or 0 for key in self.versions if key.major == major),
            default=0,
        )


class Registry:
    """Component name to Component mapping for one watched root.

    Written only with scanner results through :meth:`apply`; everything else reads it.
    """

    def __init__(self, components: Optional[Dict[str, Component]] = None) -> None:
        self._components: Dict[str, Component] = dict(components or {})

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __iter__(self) -> Iterator[Component]:
        for name in sorted(self._components):
            yield self._components[name]

    def __len__(self) -> int:
        return len(self._components)

    def get(self, name: str) -> Optional[Component]:
        return self._components.get(name)

    def require(self, name: object) -> Component:
        if not isinstance(name, str) or not name:
            raise ComponentNotFound("Missing component parameter")
        component = self._components.get(name)
        if component is None:
            raise ComponentNotFound(f"Component not found: {name}")
        return component

    def names(self) -> List[str]:
        return sorted(self._components)

    def in_directory(self, directory: Path) -> List[Component]:
        return [component for component in self if component.directory == directory]

    def apply(self, name: str, component: Optional[Component]) -> bool:
        """Replace or drop one entry; return True when its version set changed."""
        previous = self._components.get(name)
        if component is None:
            if previous is None:
                return False
            del self._components[name]
            return True
        self._components[name] = component
        if previous is None:
            return True
        return previous.keys() != component.keys()

    def snapshot(self) -> List[Dict[str, object]]:
        """Listing broadcast to clients in ``components`` messages."""
        return [
            {
                "name": component.name,
                "path": str(component.index_path),
                "versions": [str(key) for key in component.keys()],
            }
            for component in self
        ]


__all__ = ["Component", "INDEX_SUFFIX", "Registry", "VersionFile"]
