"""FastAPI application serving the uifork websocket and helper endpoints."""

from __future__ import annotations

import os
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Sequence

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..engine import VersionSync
from ..errors import ComponentNotFound, InvalidVersionFormat, UIForkError, VersionNotFound
from ..logging import get_logger
from ..versions import normalize_version

EditorLauncher = Callable[[Sequence[str]], None]

_EDITOR_ALIASES = {"vscode": "code", "cursor": "cursor"}


class HealthResponse(BaseModel):
    status: str


class ComponentInfo(BaseModel):
    name: str
    path: str
    versions: list[str]


class ComponentsResponse(BaseModel):
    components: list[ComponentInfo]


class OpenInEditorRequest(BaseModel):
    component: str
    version: str
    editor: Optional[str] = None


class OpenInEditorResponse(BaseModel):
    success: bool
    filePath: str


def _default_launcher(command: Sequence[str]) -> None:
    subprocess.Popen(list(command), stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


def _system_opener() -> str:
    return "open" if sys.platform == "darwin" else "xdg-open"


def create_app(
    engine: VersionSync,
    *,
    watch: bool = True,
    launcher: EditorLauncher = _default_launcher,
) -> FastAPI:
    """Create the FastAPI application exposing the engine over HTTP and websocket."""

    logger = get_logger("service")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await engine.start(watch=watch)
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(title="uifork watch server", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/components", response_model=ComponentsResponse)
    async def components() -> ComponentsResponse:
        snapshot = engine.registry.snapshot()
        logger.debug("GET /components - returning %d components", len(snapshot))
        return ComponentsResponse(components=[ComponentInfo(**entry) for entry in snapshot])

    @app.post("/open-in-editor", response_model=OpenInEditorResponse)
    async def open_in_editor(payload: OpenInEditorRequest) -> OpenInEditorResponse:
        component = engine.registry.require(payload.component)
        key = normalize_version(payload.version)
        if key is None:
            raise InvalidVersionFormat(f"Invalid version format: {payload.version}")
        version = component.versions.get(key)
        if version is None or not version.path.exists():
            raise VersionNotFound(f"Version file not found: {key}")

        editor = (
            _EDITOR_ALIASES.get(payload.editor or "")
            or engine.config.editor
            or os.environ.get("EDITOR")
            or "cursor"
        )
        file_path = str(version.path)
        try:
            launcher([editor, file_path])
        except OSError as exc:
            logger.warning("Could not start %s (%s); using the system opener", editor, exc)
            try:
                launcher([_system_opener(), file_path])
            except OSError as fallback_exc:
                logger.error("Failed to open %s: %s", file_path, fallback_exc)
                return JSONResponse(  # type: ignore[return-value]
                    status_code=500, content={"error": "Failed to open file in editor"}
                )
        logger.info("Opened %s in %s", Path(file_path).name, editor)
        return OpenInEditorResponse(success=True, filePath=file_path)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        await engine.hub.connect(websocket)
        try:
            while True:
                message = await websocket.receive_text()
                engine.hub.handle_message(websocket, message)
        except WebSocketDisconnect:
            pass
        finally:
            engine.hub.disconnect(websocket)

    @app.exception_handler(UIForkError)
    async def uifork_error_handler(_: Any, exc: UIForkError) -> JSONResponse:
        status = 404 if isinstance(exc, (ComponentNotFound, VersionNotFound)) else 400
        return JSONResponse(status_code=status, content={"error": str(exc), "code": exc.code})

    return app


def run_service(
    engine: VersionSync, host: str | None = None, port: int | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    bind_host = host or engine.config.server.host
    bind_port = port or engine.config.server.port
    logger = get_logger("service")
    logger.info("Server running on http://%s:%d", bind_host, bind_port)
    logger.info("WebSocket server running on ws://%s:%d/ws", bind_host, bind_port)
    uvicorn.run(create_app(engine), host=bind_host, port=bind_port, log_level="warning")
