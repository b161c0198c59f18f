"""Mutating operations on the version set, serialized per component."""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, Iterator, List, Mapping, Optional, Tuple, TypeVar

from .codegen import IndexEntry, IndexGenerator
from .errors import (
    ComponentNotFound,
    FileSystemFailure,
    InvalidVersionFormat,
    LastVersionDeleteRejected,
    UIForkError,
    VersionAlreadyExists,
    VersionNotFound,
)
from .fileops import atomic_write_text, read_bytes_if_exists, restore_bytes
from .logging import get_logger
from .models import Component, Registry
from .naming import version_identifier
from .scanner import VERSION_EXTENSIONS, DirectoryScanner, parse_version_filename
from .templates import promoted_source, rename_identifier, version_skeleton, wrapper_source
from .versions import VersionKey, normalize_version

T = TypeVar("T")

IDLE = "IDLE"
MUTATING = "MUTATING"

COMMAND_TYPES = (
    "new_version",
    "duplicate_version",
    "delete_version",
    "rename_version",
    "rename_label",
    "promote_version",
    "init_component",
)


@dataclass
class Command:
    """A client request; lives only while it is being processed."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    origin: Any = None


@dataclass
class CommandResult:
    """Outcome of a successful command."""

    component: str
    ack: Dict[str, Any]


@dataclass
class _Outcome:
    ack: Dict[str, Any]
    component: Optional[Component]


class _Lane:
    def __init__(self) -> None:
        self.queue: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self.state = IDLE
        self.task: Optional[asyncio.Task] = None


class _Transaction:
    """Captures file contents before they change so a failed operation can be undone."""

    def __init__(self) -> None:
        self._snapshots: List[Tuple[Path, Optional[bytes]]] = []
        self._seen: set[Path] = set()

    def capture(self, path: Path) -> None:
        if path in self._seen:
            return
        self._seen.add(path)
        self._snapshots.append((path, read_bytes_if_exists(path)))

    def rollback(self) -> None:
        logger = get_logger("processor")
        for path, content in reversed(self._snapshots):
            try:
                restore_bytes(path, content)
            except OSError:
                logger.exception("Rollback could not restore %s", path)


class CommandProcessor:
    """Executes version-set commands; one FIFO lane per component.

    Jobs submitted for the same component run one at a time in arrival order,
    while lanes of different components drain concurrently. The watcher queues
    its rescans on the same lanes, so a rescan never overlaps a mutation.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        scanner: DirectoryScanner | None = None,
        generator: IndexGenerator | None = None,
        root: Path | None = None,
    ) -> None:
        self.registry = registry
        self.scanner = scanner or DirectoryScanner()
        self.generator = generator or IndexGenerator()
        self.root = root
        self.logger = get_logger("processor")
        self._lanes: Dict[str, _Lane] = {}
        self._handlers: Dict[str, Callable[[Component, Mapping[str, Any]], _Outcome]] = {
            "new_version": self._new_version,
            "duplicate_version": self._duplicate_version,
            "delete_version": self._delete_version,
            "rename_version": self._rename_version,
            "rename_label": self._rename_label,
            "promote_version": self._promote_version,
        }

    # ------------------------------------------------------------------
    # Lanes

    def state(self, name: str) -> str:
        lane = self._lanes.get(name)
        return lane.state if lane is not None else IDLE

    def submit(self, name: str, job: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """Queue ``job`` on the component's lane and return a future for its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        lane = self._lanes.get(name)
        if lane is None:
            lane = self._lanes[name] = _Lane()
        lane.queue.append((job, future))
        if lane.task is None:
            lane.task = loop.create_task(self._drain(name, lane))
        return future

    async def join(self) -> None:
        """Wait until every lane has drained."""
        while True:
            tasks = [lane.task for lane in self._lanes.values() if lane.task is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drain(self, name: str, lane: _Lane) -> None:
        try:
            while lane.queue:
                job, future = lane.queue.popleft()
                lane.state = MUTATING
                try:
                    result = await job()
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as exc:
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    lane.state = IDLE
        except asyncio.CancelledError:
            while lane.queue:
                _, pending = lane.queue.popleft()
                pending.cancel()
            raise
        finally:
            lane.task = None
            if not lane.queue and self._lanes.get(name) is lane:
                del self._lanes[name]

    # ------------------------------------------------------------------
    # Commands

    async def execute(self, command: Command) -> CommandResult:
        """Run one command on its component's lane and return the ack payload."""
        payload = command.payload if isinstance(command.payload, dict) else {}
        if command.type == "init_component":
            source = self._resolve_source(payload.get("path") or payload.get("component"))
            name = source.stem
            return await self.submit(name, lambda: self._run_init(source))

        handler = self._handlers.get(command.type)
        if handler is None:
            raise ValueError(f"Unknown command type: {command.type}")
        name = self.registry.require(payload.get("component")).name
        return await self.submit(name, lambda: self._run(name, handler, payload))

    async def _run(
        self,
        name: str,
        handler: Callable[[Component, Mapping[str, Any]], _Outcome],
        payload: Mapping[str, Any],
    ) -> CommandResult:
        # Re-read inside the lane: an earlier job may have changed or dropped it.
        component = self.registry.require(name)
        outcome = await asyncio.to_thread(handler, component, payload)
        self.registry.apply(name, outcome.component)
        return CommandResult(component=name, ack=outcome.ack)

    async def _run_init(self, source: Path) -> CommandResult:
        name = source.stem
        if name in self.registry:
            raise VersionAlreadyExists(f"{name} is already versioned")
        outcome = await asyncio.to_thread(self._init_component, source)
        self.registry.apply(name, outcome.component)
        return CommandResult(component=name, ack=outcome.ack)

    # The operations below run in a worker thread and must not touch the registry.

    def _new_version(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        requested = payload.get("version")
        if requested:
            key = _require_key(requested)
        else:
            key = VersionKey(major=component.highest_major() + 1)
        target = component.directory / f"{component.name}.{key}{component.extension}"
        if key in component.versions or target.exists():
            raise VersionAlreadyExists(f"Version already exists: {key}")

        with self._transaction(f"Creating {key}") as tx:
            tx.capture(target)
            atomic_write_text(target, version_skeleton(component.name, key, component.extension))
            refreshed = self._regenerate(component, tx)

        self.logger.info("[%s] New version: %s (%s)", component.name, key, target.name)
        return _Outcome(
            ack={"version": str(key), "message": "created new version"},
            component=refreshed,
        )

    def _duplicate_version(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        source_key = _require_key(payload.get("version"))
        source = _require_version(component, source_key)

        requested = payload.get("newVersion")
        if requested:
            target_key = _require_key(requested)
        else:
            target_key = VersionKey(
                major=source_key.major,
                minor=component.highest_minor(source_key.major) + 1,
            )
        target = component.directory / f"{component.name}.{target_key}{source.path.suffix}"
        if target_key in component.versions or target.exists():
            raise VersionAlreadyExists(f"Target version already exists: {target_key}")

        with self._transaction(f"Duplicating {source_key}") as tx:
            tx.capture(target)
            atomic_write_text(target, source.path.read_text(encoding="utf-8"))
            refreshed = self._regenerate(component, tx)

        self.logger.info("[%s] Duplicate version: %s -> %s", component.name, source_key, target_key)
        return _Outcome(
            ack={"version": str(target_key), "message": "duplicated"},
            component=refreshed,
        )

    def _delete_version(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        key = _require_key(payload.get("version"))
        version = _require_version(component, key)
        if len(component.versions) == 1:
            raise LastVersionDeleteRejected(
                "Cannot delete the last remaining version. At least one version must exist."
            )

        with self._transaction(f"Deleting {key}") as tx:
            tx.capture(version.path)
            version.path.unlink()
            refreshed = self._regenerate(component, tx)

        self.logger.info("[%s] Delete version: %s", component.name, key)
        return _Outcome(
            ack={"version": str(key), "message": "deleted version"},
            component=refreshed,
        )

    def _rename_version(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        old_key = _require_key(payload.get("version"))
        version = _require_version(component, old_key)
        new_key = normalize_version(payload.get("newVersion"))
        if new_key is None:
            raise InvalidVersionFormat(f"Invalid target version format: {payload.get('newVersion')}")
        target = component.directory / f"{component.name}.{new_key}{version.path.suffix}"
        if new_key in component.versions or target.exists():
            raise VersionAlreadyExists(f"Target version already exists: {new_key}")

        carried: Dict[VersionKey, IndexEntry] = {}
        if version.label != old_key.display or version.description:
            label = version.label if version.label != old_key.display else new_key.display
            carried[new_key] = IndexEntry(label=label, description=version.description)

        with self._transaction(f"Renaming {old_key}") as tx:
            tx.capture(version.path)
            tx.capture(target)
            os.rename(version.path, target)
            source = target.read_text(encoding="utf-8")
            rewritten = rename_identifier(
                source,
                version_identifier(component.name, old_key),
                version_identifier(component.name, new_key),
            )
            if rewritten != source:
                atomic_write_text(target, rewritten)
            refreshed = self._regenerate(component, tx, overrides=carried)

        self.logger.info("[%s] Rename version: %s -> %s", component.name, old_key, new_key)
        return _Outcome(
            ack={
                "version": str(old_key),
                "newVersion": str(new_key),
                "message": "renamed version",
            },
            component=refreshed,
        )

    def _rename_label(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        key = _require_key(payload.get("version"))
        version = _require_version(component, key)
        new_label = payload.get("newLabel")
        if not isinstance(new_label, str):
            raise InvalidVersionFormat("Missing or invalid newLabel parameter")

        override = {key: IndexEntry(label=new_label, description=version.description)}
        with self._transaction(f"Relabelling {key}") as tx:
            refreshed = self._regenerate(component, tx, overrides=override)

        self.logger.info("[%s] Rename label: %s -> %r", component.name, key, new_label)
        return _Outcome(
            ack={"version": str(key), "newLabel": new_label, "message": "renamed label"},
            component=refreshed,
        )

    def _promote_version(self, component: Component, payload: Mapping[str, Any]) -> _Outcome:
        key = _require_key(payload.get("version"))
        version = _require_version(component, key)
        wrapper = _find_wrapper(component) or component.directory / (
            f"{component.name}{version.path.suffix}"
        )
        promoted = promoted_source(version.path.read_text(encoding="utf-8"), component.name, key)

        with self._transaction(f"Promoting {key}") as tx:
            tx.capture(wrapper)
            for other in component.ordered():
                tx.capture(other.path)
            tx.capture(component.index_path)

            atomic_write_text(wrapper, promoted)
            for other in component.ordered():
                other.path.unlink()
            with contextlib.suppress(FileNotFoundError):
                component.index_path.unlink()

        self.logger.info(
            "[%s] Promoted %s into %s; versioning scaffolding removed",
            component.name,
            key,
            wrapper.name,
        )
        return _Outcome(
            ack={
                "version": str(key),
                "component": component.name,
                "message": "promoted version",
            },
            component=None,
        )

    def _init_component(self, source: Path) -> _Outcome:
        name = source.stem
        if not source.is_file():
            raise ComponentNotFound(f"File does not exist: {source}")
        if source.suffix not in VERSION_EXTENSIONS or parse_version_filename(source.name):
            raise ComponentNotFound(f"Not a component source file: {source.name}")

        directory = source.parent
        first_version = directory / f"{name}.v1{source.suffix}"
        placeholder = Component(name=name, directory=directory, extension=source.suffix)
        if first_version.exists() or placeholder.index_path.exists():
            raise VersionAlreadyExists(f"{name} is already versioned")

        with self._transaction(f"Initializing {name}") as tx:
            tx.capture(source)
            tx.capture(first_version)
            os.rename(source, first_version)
            refreshed = self._regenerate(placeholder, tx)
            atomic_write_text(source, wrapper_source(name, source.suffix))

        self.logger.info("[%s] Moved %s -> %s", name, source.name, first_version.name)
        return _Outcome(
            ack={"component": name, "message": "initialized component"},
            component=refreshed,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    @contextlib.contextmanager
    def _transaction(self, description: str) -> Iterator[_Transaction]:
        tx = _Transaction()
        try:
            yield tx
        except UIForkError:
            tx.rollback()
            raise
        except OSError as exc:
            tx.rollback()
            raise FileSystemFailure(f"{description} failed: {exc}") from exc

    def _regenerate(
        self,
        component: Component,
        tx: _Transaction,
        *,
        overrides: Mapping[VersionKey, IndexEntry] | None = None,
    ) -> Optional[Component]:
        tx.capture(component.index_path)
        refreshed = self.scanner.scan_component(component.directory, component.name)
        if refreshed is None:
            return None
        for key, entry in (overrides or {}).items():
            version = refreshed.versions.get(key)
            if version is not None:
                version.label = entry.label
                version.description = entry.description
        self.generator.write(refreshed)
        return refreshed

    def _resolve_source(self, raw: object) -> Path:
        if not isinstance(raw, str) or not raw.strip():
            raise ComponentNotFound("Missing component path")
        path = Path(raw.strip()).expanduser()
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        return path.resolve()


def _require_key(raw: object) -> VersionKey:
    if raw is None or raw == "":
        raise InvalidVersionFormat("Missing version parameter")
    key = normalize_version(raw)
    if key is None:
        raise InvalidVersionFormat(f"Invalid version format: {raw}")
    return key


def _require_version(component: Component, key: VersionKey):
    version = component.versions.get(key)
    if version is None:
        raise VersionNotFound(f"Version not found: {key}")
    return version


def _find_wrapper(component: Component) -> Optional[Path]:
    for extension in (component.extension, *VERSION_EXTENSIONS):
        candidate = component.directory / f"{component.name}{extension}"
        if candidate.is_file():
            return candidate
    return None


__all__ = [
    "COMMAND_TYPES",
    "Command",
    "CommandProcessor",
    "CommandResult",
    "IDLE",
    "MUTATING",
]
