"""Debounced filesystem watching that keeps the Registry and index files current."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .codegen import IndexGenerator
from .errors import UIForkError
from .logging import get_logger
from .models import Component, Registry
from .processor import CommandProcessor
from .scanner import DirectoryFilter, DirectoryScanner, parse_version_filename
from .versions import VersionKey

ChangeCallback = Callable[[List[str]], Awaitable[None]]

_RELEVANT_EVENTS = {"created", "deleted", "modified", "moved"}


@dataclass
class VersionDiff:
    """Keys gained and lost by one component between two scans."""

    added: List[VersionKey] = field(default_factory=list)
    removed: List[VersionKey] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)

    @property
    def renamed(self) -> Optional[Tuple[VersionKey, VersionKey]]:
        if len(self.added) == 1 and len(self.removed) == 1:
            return self.removed[0], self.added[0]
        return None


def diff_versions(previous: Optional[Component], current: Optional[Component]) -> VersionDiff:
    before = set(previous.versions) if previous is not None else set()
    after = set(current.versions) if current is not None else set()
    return VersionDiff(added=sorted(after - before), removed=sorted(before - after))


class _EventBridge(FileSystemEventHandler):
    """Hands watchdog events from the observer thread to the asyncio loop.

    Paths are resolved here, on the observer thread, so the loop never touches the disk.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: Callable[[str], None]) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            try:
                self._loop.call_soon_threadsafe(
                    self._callback, os.path.realpath(os.fsdecode(raw))
                )
            except RuntimeError:
                # Loop already closed during shutdown.
                return


class DebouncedWatcher:
    """Coalesces bursts of version-file events into one rescan per directory."""

    def __init__(
        self,
        root: Path,
        registry: Registry,
        processor: CommandProcessor,
        *,
        scanner: DirectoryScanner | None = None,
        generator: IndexGenerator | None = None,
        debounce: float = 0.15,
        exclude_paths: Sequence[str] = (),
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.registry = registry
        self.processor = processor
        self.scanner = scanner or DirectoryScanner()
        self.generator = generator or IndexGenerator()
        self.debounce = debounce
        self.on_change = on_change
        self.rescans = 0
        self.logger = get_logger("watcher")
        self._filter = DirectoryFilter.for_root(self.root, exclude_paths)
        self._pending: Dict[Path, Set[str]] = {}
        self._timers: Dict[Path, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._observer: Optional[Observer] = None

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_EventBridge(loop, self.notify), str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        self.logger.info("Watching for file changes in %s", self.root)

    async def stop(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._pending.clear()
        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            await asyncio.to_thread(observer.join)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def notify(self, raw_path: str) -> None:
        """Record one event for an already-resolved path; must be called on the loop thread."""
        path = Path(raw_path)
        if parse_version_filename(path.name) is None or self._is_ignored(path):
            return
        directory = path.parent
        self._pending.setdefault(directory, set()).add(path.name)

        handle = self._timers.pop(directory, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._timers[directory] = loop.call_later(self.debounce, self._flush, directory)

    async def settle(self) -> None:
        """Wait for pending timers and the rescans they trigger."""
        while self._timers or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce / 2)

    def _flush(self, directory: Path) -> None:
        self._timers.pop(directory, None)
        names = sorted(self._pending.pop(directory, set()))
        self.logger.debug("Settled %d event path(s) in %s: %s", len(names), directory, ", ".join(names))
        task = asyncio.get_running_loop().create_task(self._rescan(directory))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _rescan(self, directory: Path) -> None:
        self.rescans += 1
        try:
            on_disk = await asyncio.to_thread(self.scanner.scan, directory)
        except (FileNotFoundError, NotADirectoryError):
            on_disk = Registry()

        names: Set[str] = {component.name for component in self.registry.in_directory(directory)}
        for name in on_disk.names():
            tracked = self.registry.get(name)
            if tracked is not None and tracked.directory != directory:
                self.logger.warning(
                    "Ignoring %s in %s: already tracked in %s", name, directory, tracked.directory
                )
                continue
            names.add(name)

        ordered = sorted(names)
        futures = [
            self.processor.submit(name, partial(self._reconcile, directory, name))
            for name in ordered
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)
        for name, result in zip(ordered, results):
            if isinstance(result, Exception):
                self.logger.error("[%s] Rescan failed: %s", name, result)

        if ordered and self.on_change is not None:
            await self.on_change(ordered)

    async def _reconcile(self, directory: Path, name: str) -> bool:
        previous = self.registry.get(name)
        current = await asyncio.to_thread(self.scanner.scan_component, directory, name)
        diff = diff_versions(previous, current)

        if diff.changed:
            self.logger.info(
                "[%s] Version set changed (added: %s; removed: %s)",
                name,
                ", ".join(str(key) for key in diff.added) or "-",
                ", ".join(str(key) for key in diff.removed) or "-",
            )
        if current is not None and previous is not None and diff.renamed is not None:
            _carry_label(previous, current, *diff.renamed)

        self.registry.apply(name, current)
        if current is not None and diff.changed:
            try:
                await asyncio.to_thread(self.generator.write, current)
            except UIForkError as exc:
                self.logger.error("[%s] %s", name, exc)
        return diff.changed

    def _is_ignored(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.root)
        except ValueError:
            return True
        return self._filter.excludes("/".join(rel.parts[:-1]))


def _carry_label(previous: Component, current: Component, old: VersionKey, new: VersionKey) -> None:
    before = previous.versions[old]
    after = current.versions[new]
    if before.label != old.display:
        after.label = before.label
    if before.description:
        after.description = before.description


__all__ = ["DebouncedWatcher", "VersionDiff", "diff_versions"]
