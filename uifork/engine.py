"""Wiring of registry, processor, watcher and hub for one watched root."""

from __future__ import annotations

import asyncio
from pathlib import Path

from .codegen import IndexGenerator
from .config import UIForkConfig, load_config
from .errors import UIForkError
from .hub import BroadcastHub
from .logging import get_logger
from .models import Registry
from .processor import CommandProcessor
from .scanner import DirectoryScanner
from .watcher import DebouncedWatcher


class VersionSync:
    """Owns the Registry of one root and every service that reads or writes it."""

    def __init__(
        self,
        root: Path | str,
        config: UIForkConfig | None = None,
        *,
        scanner: DirectoryScanner | None = None,
        generator: IndexGenerator | None = None,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        if not self.root.is_dir():
            raise NotADirectoryError(f"Watch path is not a directory: {root}")
        self.config = config or load_config(self.root)
        self.logger = get_logger("engine")
        self.scanner = scanner or DirectoryScanner()
        self.generator = generator or IndexGenerator(lazy=self.config.generate.lazy)
        self.registry = Registry()
        self.processor = CommandProcessor(
            self.registry,
            scanner=self.scanner,
            generator=self.generator,
            root=self.root,
        )
        self.hub = BroadcastHub(self.registry, self.processor)
        self.watcher = DebouncedWatcher(
            self.root,
            self.registry,
            self.processor,
            scanner=self.scanner,
            generator=self.generator,
            debounce=self.config.watch.debounce_seconds,
            exclude_paths=self.config.watch.exclude_paths,
            on_change=self.hub.broadcast_change,
        )
        self._watching = False

    async def start(self, *, watch: bool = True) -> None:
        """Discover components, regenerate their indexes and optionally start watching."""
        self.logger.info("Searching for versioned components in: %s", self.root)
        discovered = await asyncio.to_thread(
            self.scanner.discover, self.root, self.config.watch.exclude_paths
        )
        for component in discovered:
            self.registry.apply(component.name, component)
            try:
                await asyncio.to_thread(self.generator.write, component)
            except UIForkError as exc:
                self.logger.error("[%s] %s", component.name, exc)

        if len(self.registry) == 0:
            self.logger.info("No versioned components found in the project.")
            self.logger.info("Run 'uifork init <component-path>' to create one.")
        else:
            self.logger.info("Found %d versioned component(s):", len(self.registry))
            for component in self.registry:
                self.logger.info("  - %s (%d versions)", component.name, len(component.versions))

        if watch:
            await self.watcher.start()
            self._watching = True

    async def stop(self) -> None:
        if self._watching:
            await self.watcher.stop()
            self._watching = False
        await self.hub.join()
        await self.processor.join()


__all__ = ["VersionSync"]
