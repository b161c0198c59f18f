"""Websocket command routing and registry broadcasts."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol, Set

from .errors import UIForkError
from .logging import get_logger
from .models import Registry
from .processor import COMMAND_TYPES, Command, CommandProcessor


class Connection(Protocol):
    """Anything that can push a text frame to one client."""

    async def send_text(self, data: str) -> None: ...


class BroadcastHub:
    """Routes inbound commands and fans registry snapshots out to every client.

    Only the open sockets are remembered; there is no per-client session state.
    """

    def __init__(self, registry: Registry, processor: CommandProcessor) -> None:
        self.registry = registry
        self.processor = processor
        self.logger = get_logger("hub")
        self._clients: Dict[int, Connection] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, connection: Connection) -> None:
        self._clients[id(connection)] = connection
        self.logger.info("Client connected (%d total)", len(self._clients))
        await self.send(connection, "ack", {"message": "Connected to uifork watch server"})
        await self.send(connection, "components", {"components": self.registry.snapshot()})

    def disconnect(self, connection: Connection) -> None:
        if self._clients.pop(id(connection), None) is not None:
            self.logger.info("Client disconnected (%d total)", len(self._clients))

    def handle_message(self, connection: Connection, raw: str | bytes) -> Optional[asyncio.Task]:
        """Parse one frame and start processing it; malformed frames are dropped."""
        command = self._parse(raw, connection)
        if command is None:
            return None
        self.logger.debug("Received %s for %s", command.type, command.payload.get("component"))
        task = asyncio.get_running_loop().create_task(self._process(connection, command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def broadcast_change(self, components: List[str]) -> None:
        """Send ``file_changed`` then the full ``components`` listing to every client."""
        payload: Dict[str, Any] = {"message": "Versions file updated", "components": components}
        if len(components) == 1:
            payload["component"] = components[0]
        snapshot = {"components": self.registry.snapshot()}
        for connection in list(self._clients.values()):
            if await self.send(connection, "file_changed", payload):
                await self.send(connection, "components", snapshot)

    async def send(self, connection: Connection, message_type: str, payload: Dict[str, Any]) -> bool:
        try:
            await connection.send_text(json.dumps({"type": message_type, "payload": payload}))
        except Exception as exc:
            self.logger.debug("Dropping client after failed send: %s", exc)
            self.disconnect(connection)
            return False
        return True

    async def join(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process(self, connection: Connection, command: Command) -> None:
        try:
            result = await self.processor.execute(command)
        except UIForkError as exc:
            self.logger.warning("%s rejected: %s", command.type, exc)
            await self.send(connection, "error", {"message": str(exc), "code": exc.code})
            return
        except Exception as exc:  # pragma: no cover - unexpected failure
            self.logger.exception("%s failed unexpectedly", command.type)
            await self.send(connection, "error", {"message": str(exc), "code": "InternalError"})
            return

        await self.broadcast_change([result.component])
        await self.send(connection, "ack", result.ack)

    def _parse(self, raw: str | bytes, connection: Connection) -> Optional[Command]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.warning("Dropping unparseable message")
            return None
        if not isinstance(data, dict):
            self.logger.warning("Dropping message that is not a JSON object")
            return None
        message_type = data.get("type")
        payload = data.get("payload", {})
        if message_type not in COMMAND_TYPES:
            self.logger.warning("Dropping message with unknown type: %r", message_type)
            return None
        if not isinstance(payload, dict):
            self.logger.warning("Dropping %s with non-object payload", message_type)
            return None
        return Command(type=message_type, payload=payload, origin=connection)


__all__ = ["BroadcastHub", "Connection"]
