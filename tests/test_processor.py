"""Tests for the command processor and its per-component lanes."""

from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from tests._fixtures.component_builder import ComponentBuilder
from uifork.codegen import IndexGenerator, read_index_entries
from uifork.errors import (
    ComponentNotFound,
    InvalidVersionFormat,
    LastVersionDeleteRejected,
    RegenerationFailure,
    VersionAlreadyExists,
    VersionNotFound,
)
from uifork.models import Component
from uifork.processor import IDLE, MUTATING, Command, CommandProcessor, CommandResult
from uifork.versions import VersionKey


def _execute(processor: CommandProcessor, command_type: str, **payload: Any) -> CommandResult:
    return asyncio.run(processor.execute(Command(command_type, payload)))


class _FailingGenerator(IndexGenerator):
    def write(self, component: Component) -> bool:
        raise RegenerationFailure(f"Failed to write {component.index_path.name}: disk full")


def test_new_version_creates_next_major(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    result = _execute(processor, "new_version", component="Foo")

    assert result.component == "Foo"
    assert result.ack == {"version": "v2", "message": "created new version"}
    assert (directory / "Foo.v2.tsx").exists()
    assert "FooV2" in (directory / "Foo.v2.tsx").read_text(encoding="utf-8")
    assert processor.registry.snapshot()[0]["versions"] == ["v1", "v2"]
    assert '"v2": {' in (directory / "Foo.versions.ts").read_text(encoding="utf-8")


def test_new_version_with_explicit_key(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    result = _execute(processor, "new_version", component="Foo", version="5.1")

    assert result.ack["version"] == "v5_1"
    assert (directory / "Foo.v5_1.tsx").exists()
    with pytest.raises(VersionAlreadyExists):
        _execute(processor, "new_version", component="Foo", version="v1")


def test_duplicate_version_creates_next_minor(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    result = _execute(processor, "duplicate_version", component="Foo", version="v1")

    assert result.ack == {"version": "v1_1", "message": "duplicated"}
    assert (directory / "Foo.v1_1.tsx").read_text(encoding="utf-8") == (
        directory / "Foo.v1.tsx"
    ).read_text(encoding="utf-8")

    again = _execute(processor, "duplicate_version", component="Foo", version="v1")
    assert again.ack["version"] == "v1_2"


def test_duplicate_missing_version_fails(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    with pytest.raises(VersionNotFound):
        _execute(processor, "duplicate_version", component="Foo", version="v9")


def test_rename_version_normalizes_target(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1", "v2"])
    processor = component_builder.processor()

    result = _execute(processor, "rename_version", component="Foo", version="v2", newVersion="2.2")

    assert result.ack == {"version": "v2", "newVersion": "v2_2", "message": "renamed version"}
    assert not (directory / "Foo.v2.tsx").exists()
    renamed = (directory / "Foo.v2_2.tsx").read_text(encoding="utf-8")
    assert "FooV2_2" in renamed
    assert "FooV2()" not in renamed
    assert processor.registry.require("Foo").keys() == [VersionKey(1), VersionKey(2, 2)]


def test_rename_onto_existing_version_changes_nothing(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1", "v2"])
    processor = component_builder.processor()
    before = component_builder.listing()

    with pytest.raises(VersionAlreadyExists):
        _execute(processor, "rename_version", component="Foo", version="v2", newVersion="v1")

    assert component_builder.listing() == before


def test_rename_rejects_invalid_target(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    with pytest.raises(InvalidVersionFormat):
        _execute(processor, "rename_version", component="Foo", version="v1", newVersion="latest")


def test_rename_carries_custom_label(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1", "v2"])
    processor = component_builder.processor()

    _execute(processor, "rename_label", component="Foo", version="v2", newLabel="Compact")
    _execute(processor, "rename_version", component="Foo", version="v2", newVersion="v3")

    entries = read_index_entries(directory / "Foo.versions.ts")
    assert entries[VersionKey(3)].label == "Compact"
    assert VersionKey(2) not in entries


def test_rename_label_updates_index(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    result = _execute(processor, "rename_label", component="Foo", version="v1", newLabel="Classic")

    assert result.ack == {"version": "v1", "newLabel": "Classic", "message": "renamed label"}
    assert 'label: "Classic"' in (directory / "Foo.versions.ts").read_text(encoding="utf-8")
    assert processor.registry.require("Foo").versions[VersionKey(1)].label == "Classic"


def test_delete_version_removes_file(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1", "v2"])
    processor = component_builder.processor()

    result = _execute(processor, "delete_version", component="Foo", version="v2")

    assert result.ack == {"version": "v2", "message": "deleted version"}
    assert not (directory / "Foo.v2.tsx").exists()
    assert '"v2"' not in (directory / "Foo.versions.ts").read_text(encoding="utf-8")


def test_delete_last_version_is_rejected(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    with pytest.raises(LastVersionDeleteRejected):
        _execute(processor, "delete_version", component="Foo", version="v1")

    assert (directory / "Foo.v1.tsx").exists()
    assert processor.registry.require("Foo").keys() == [VersionKey(1)]


def test_regeneration_failure_rolls_back(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1", "v2"])
    processor = component_builder.processor(generator=_FailingGenerator())
    before = component_builder.listing()

    with pytest.raises(RegenerationFailure):
        _execute(processor, "new_version", component="Foo")
    with pytest.raises(RegenerationFailure):
        _execute(processor, "delete_version", component="Foo", version="v2")
    with pytest.raises(RegenerationFailure):
        _execute(processor, "rename_version", component="Foo", version="v2", newVersion="v4")

    assert component_builder.listing() == before
    assert processor.registry.require("Foo").keys() == [VersionKey(1), VersionKey(2)]


def test_promote_version_replaces_wrapper(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1", "v2"])
    component_builder.write({"src/Foo.tsx": "export default function Foo() { return null }\n"})
    processor = component_builder.processor()
    _execute(processor, "new_version", component="Foo", version="v3")

    result = _execute(processor, "promote_version", component="Foo", version="v2")

    assert result.ack == {"version": "v2", "component": "Foo", "message": "promoted version"}
    assert component_builder.listing() == ["Foo.tsx"]
    promoted = (directory / "Foo.tsx").read_text(encoding="utf-8")
    assert promoted == "export default function Foo() { return null }\n"
    assert "Foo" not in processor.registry


def test_init_component_moves_source_into_v1(component_builder: ComponentBuilder) -> None:
    original = "export default function Card() {\n  return <div>card</div>\n}\n"
    component_builder.write({"src/Card.tsx": original})
    processor = component_builder.processor()

    result = _execute(processor, "init_component", path="src/Card.tsx")

    directory = component_builder.path("src")
    assert result.ack == {"component": "Card", "message": "initialized component"}
    assert (directory / "Card.v1.tsx").read_text(encoding="utf-8") == original
    assert (directory / "Card.versions.ts").exists()
    wrapper = (directory / "Card.tsx").read_text(encoding="utf-8")
    assert "BranchedComponent" in wrapper
    assert 'import { VERSIONS } from "./Card.versions"' in wrapper
    assert processor.registry.require("Card").keys() == [VersionKey(1)]

    with pytest.raises(VersionAlreadyExists):
        _execute(processor, "init_component", path="src/Card.tsx")


def test_init_component_requires_existing_file(component_builder: ComponentBuilder) -> None:
    component_builder.write({"src/README.md": "docs\n"})
    processor = component_builder.processor()

    with pytest.raises(ComponentNotFound):
        _execute(processor, "init_component", path="src/Missing.tsx")
    with pytest.raises(ComponentNotFound):
        _execute(processor, "init_component", path="src/README.md")


def test_unknown_component_is_reported(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    with pytest.raises(ComponentNotFound):
        _execute(processor, "new_version", component="Bar")
    with pytest.raises(ComponentNotFound):
        _execute(processor, "new_version")


def test_lane_runs_jobs_in_arrival_order(component_builder: ComponentBuilder) -> None:
    component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()
    order: List[str] = []
    states: List[str] = []

    async def job(label: str, delay: float) -> str:
        states.append(processor.state("Foo"))
        await asyncio.sleep(delay)
        order.append(label)
        return label

    async def scenario() -> List[str]:
        futures = [
            processor.submit("Foo", lambda: job("first", 0.05)),
            processor.submit("Foo", lambda: job("second", 0.0)),
            processor.submit("Foo", lambda: job("third", 0.01)),
        ]
        return await asyncio.gather(*futures)

    results = asyncio.run(scenario())

    assert results == ["first", "second", "third"]
    assert order == ["first", "second", "third"]
    assert states == [MUTATING, MUTATING, MUTATING]
    assert processor.state("Foo") == IDLE


def test_concurrent_commands_on_one_component_serialize(component_builder: ComponentBuilder) -> None:
    directory = component_builder.versions("Foo", ["v1"])
    processor = component_builder.processor()

    async def scenario() -> List[CommandResult]:
        return await asyncio.gather(
            processor.execute(Command("new_version", {"component": "Foo"})),
            processor.execute(Command("new_version", {"component": "Foo"})),
        )

    results = asyncio.run(scenario())

    assert [result.ack["version"] for result in results] == ["v2", "v3"]
    assert (directory / "Foo.v3.tsx").exists()


def test_init_component_rolls_back_on_regeneration_failure(
    component_builder: ComponentBuilder,
) -> None:
    original = "export default function Card() { return null }\n"
    component_builder.write({"src/Card.tsx": original})
    processor = component_builder.processor(generator=_FailingGenerator())

    with pytest.raises(RegenerationFailure):
        _execute(processor, "init_component", path="src/Card.tsx")

    assert component_builder.listing() == ["Card.tsx"]
    assert component_builder.path("src/Card.tsx").read_text(encoding="utf-8") == original
    assert "Card" not in processor.registry
