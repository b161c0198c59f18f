"""Tests for the FastAPI watch server."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pytest
from fastapi.testclient import TestClient

from tests._fixtures.component_builder import ComponentBuilder
from uifork.engine import VersionSync
from uifork.service import create_app


class _RecordingLauncher:
    def __init__(self, failures: int = 0) -> None:
        self.commands: List[List[str]] = []
        self._failures = failures

    def __call__(self, command: Sequence[str]) -> None:
        self.commands.append(list(command))
        if len(self.commands) <= self._failures:
            raise FileNotFoundError(command[0])


@pytest.fixture
def launcher() -> _RecordingLauncher:
    return _RecordingLauncher()


@pytest.fixture
def client(component_builder: ComponentBuilder, launcher: _RecordingLauncher) -> TestClient:
    component_builder.versions("Foo", ["v1", "v2"])
    engine = VersionSync(component_builder.path())
    app = create_app(engine, watch=False, launcher=launcher)
    with TestClient(app) as test_client:
        yield test_client


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_startup_regenerates_indexes(client: TestClient, component_builder: ComponentBuilder) -> None:
    index = component_builder.path("src/Foo.versions.ts")
    assert index.exists()
    assert 'import FooV2 from "./Foo.v2"' in index.read_text(encoding="utf-8")


def test_components_endpoint(client: TestClient) -> None:
    response = client.get("/components")
    assert response.status_code == 200
    components = response.json()["components"]
    assert [entry["name"] for entry in components] == ["Foo"]
    assert components[0]["versions"] == ["v1", "v2"]


def test_open_in_editor_uses_alias(client: TestClient, launcher: _RecordingLauncher) -> None:
    response = client.post(
        "/open-in-editor", json={"component": "Foo", "version": "2", "editor": "vscode"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["filePath"].endswith("Foo.v2.tsx")
    assert launcher.commands == [["code", data["filePath"]]]


def test_open_in_editor_defaults_to_cursor(
    client: TestClient, launcher: _RecordingLauncher, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("EDITOR", raising=False)

    response = client.post("/open-in-editor", json={"component": "Foo", "version": "v1"})

    assert response.status_code == 200
    assert launcher.commands[0][0] == "cursor"


def test_open_in_editor_reports_missing_version(client: TestClient) -> None:
    response = client.post("/open-in-editor", json={"component": "Foo", "version": "v7"})
    assert response.status_code == 404
    assert response.json()["code"] == "VersionNotFound"

    response = client.post("/open-in-editor", json={"component": "Bar", "version": "v1"})
    assert response.status_code == 404
    assert response.json()["code"] == "ComponentNotFound"

    response = client.post("/open-in-editor", json={"component": "Foo", "version": "latest"})
    assert response.status_code == 400


def test_open_in_editor_falls_back_to_system_opener(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    launcher = _RecordingLauncher(failures=1)
    app = create_app(VersionSync(component_builder.path()), watch=False, launcher=launcher)

    with TestClient(app) as test_client:
        response = test_client.post(
            "/open-in-editor", json={"component": "Foo", "version": "v1", "editor": "cursor"}
        )

    assert response.status_code == 200
    assert launcher.commands[0][0] == "cursor"
    assert launcher.commands[1][0] in {"open", "xdg-open"}


def test_open_in_editor_fails_when_nothing_launches(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    app = create_app(
        VersionSync(component_builder.path()),
        watch=False,
        launcher=_RecordingLauncher(failures=2),
    )

    with TestClient(app) as test_client:
        response = test_client.post("/open-in-editor", json={"component": "Foo", "version": "v1"})

    assert response.status_code == 500


def test_websocket_command_flow(client: TestClient, component_builder: ComponentBuilder) -> None:
    with client.websocket_connect("/ws") as websocket:
        greeting = websocket.receive_json()
        assert greeting == {
            "type": "ack",
            "payload": {"message": "Connected to uifork watch server"},
        }
        listing = websocket.receive_json()
        assert listing["type"] == "components"
        assert listing["payload"]["components"][0]["versions"] == ["v1", "v2"]

        websocket.send_json(
            {"type": "duplicate_version", "payload": {"component": "Foo", "version": "v1"}}
        )
        changed = websocket.receive_json()
        components = websocket.receive_json()
        ack = websocket.receive_json()

    assert changed["type"] == "file_changed"
    assert changed["payload"]["component"] == "Foo"
    assert components["payload"]["components"][0]["versions"] == ["v1", "v1_1", "v2"]
    assert ack == {"type": "ack", "payload": {"version": "v1_1", "message": "duplicated"}}
    assert component_builder.path("src/Foo.v1_1.tsx").exists()


def test_websocket_reports_errors(client: TestClient) -> None:
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.receive_json()

        websocket.send_text("definitely not json")
        websocket.send_json(
            {"type": "delete_version", "payload": {"component": "Foo", "version": "v9"}}
        )
        error = websocket.receive_json()

    assert error["type"] == "error"
    assert error["payload"]["code"] == "VersionNotFound"


def test_engine_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        VersionSync(tmp_path / "missing")
