"""Configuration loading for uifork (.uifork.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAME = ".uifork.yml"
DEFAULT_PORT = 3030
DEFAULT_HOST = "127.0.0.1"
DEFAULT_DEBOUNCE_MS = 150
MIN_DEBOUNCE_MS = 100
MAX_DEBOUNCE_MS = 300


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ServerConfig:
    """Where the watch server listens."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class WatchConfig:
    """Watcher timing and exclusions."""

    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    exclude_paths: List[str] = field(default_factory=list)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


@dataclass
class GenerateConfig:
    """Options for the generated index file."""

    lazy: bool = False


@dataclass
class UIForkConfig:
    """Represents the settings defined in .uifork.yml."""

    root: Path
    server: ServerConfig = field(default_factory=ServerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    generate: GenerateConfig = field(default_factory=GenerateConfig)
    editor: Optional[str] = None


def load_config(
    config_path: Path, *, environ: Mapping[str, str] | None = None
) -> UIForkConfig:
    """Load configuration from disk, then apply the ``PORT`` environment override."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    env = os.environ if environ is None else environ

    config = UIForkConfig(root=root)
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
        _apply_mapping(config, data)

    env_port = _as_int(env.get("PORT"))
    if env_port is not None:
        config.server.port = env_port
    return config


def _apply_mapping(config: UIForkConfig, data: Dict[str, Any]) -> None:
    server_data = _as_dict(data.get("server"))
    if server_data:
        host = _as_str(server_data.get("host"))
        port = _as_int(server_data.get("port"))
        if host:
            config.server.host = host
        if port is not None:
            config.server.port = port

    watch_data = _as_dict(data.get("watch"))
    if watch_data:
        debounce = _as_int(watch_data.get("debounce_ms"))
        if debounce is not None:
            config.watch.debounce_ms = min(max(debounce, MIN_DEBOUNCE_MS), MAX_DEBOUNCE_MS)
        config.watch.exclude_paths = _as_str_list(watch_data.get("exclude_paths"))

    generate_data = _as_dict(data.get("generate"))
    if generate_data:
        config.generate.lazy = _as_bool(generate_data.get("lazy")) or False

    config.editor = _as_str(data.get("editor"))


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "GenerateConfig",
    "ServerConfig",
    "UIForkConfig",
    "WatchConfig",
    "load_config",
]
