"""Error taxonomy surfaced to websocket clients and the CLI."""

from __future__ import annotations


class UIForkError(RuntimeError):
    """Base class for recoverable engine failures.

    ``code`` is the stable identifier sent to clients inside ``error`` payloads.
    """

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidVersionFormat(UIForkError):
    """Raised when a version identifier does not normalize to ``v<major>[_<minor>]``."""


class VersionNotFound(UIForkError):
    """Raised when a command references a version the component does not have."""


class VersionAlreadyExists(UIForkError):
    """Raised when a command would create a version key that is already taken."""


class ComponentNotFound(UIForkError):
    """Raised when a command references a component that is not tracked."""


class LastVersionDeleteRejected(UIForkError):
    """Raised when deleting the only remaining version of a component."""


class FileSystemFailure(UIForkError):
    """Raised when a filesystem step fails; earlier steps have been rolled back."""


class RegenerationFailure(UIForkError):
    """Raised when the generated index cannot be rewritten."""


__all__ = [
    "ComponentNotFound",
    "FileSystemFailure",
    "InvalidVersionFormat",
    "LastVersionDeleteRejected",
    "RegenerationFailure",
    "UIForkError",
    "VersionAlreadyExists",
    "VersionNotFound",
]
