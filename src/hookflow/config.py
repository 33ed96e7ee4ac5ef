"""Configuration helpers for hookflow."""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .fs import atomic_write_text, file_lock

DEFAULT_CONFIG: dict[str, Any] = {
    "hookflow": {
        "hooks_dir": "hooks",
        "history_limit": 500,
        "default_timeout_ms": 30000,
        "condition_timeout_ms": 30000,
        "watch_interval_seconds": 1.0,
        "debounce_seconds": 1.0,
        "max_workers": 4,
    },
    "provider": {
        "type": "openai_compatible",
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
        "api_key_env": "OPENAI_API_KEY",
        "timeout_s": 60,
    },
    "spec": {
        "default_path": ".hookflow/spec.yaml",
        "output_dir": "generated",
    },
}

CONFIG_FILENAME = "config.yaml"


def resolve_data_dir(data_dir: Path | str | None = None) -> Path:
    if data_dir:
        return Path(data_dir).expanduser()
    env_path = os.environ.get("HOOKFLOW_HOME")
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / ".hookflow"


def deep_merge(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise RuntimeError(f"讀取設定檔失敗：{path}") from exc
    if not isinstance(payload, dict):
        raise RuntimeError(f"設定檔必須為物件：{path}")
    return payload


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    try:
        atomic_write_text(path, yaml.safe_dump(data, allow_unicode=True, sort_keys=False))
    except OSError as exc:
        raise RuntimeError(f"寫入設定檔失敗：{path}") from exc


def set_config_value(config: dict[str, Any], key_path: str, value: Any) -> dict[str, Any]:
    parts = key_path.split(".")
    cursor = config
    for part in parts[:-1]:
        child = cursor.get(part)
        if not isinstance(child, dict):
            child = {}
            cursor[part] = child
        cursor = child
    cursor[parts[-1]] = value
    return config


def get_config_value(config: Mapping[str, Any], key_path: str) -> Any:
    cursor: Any = config
    for part in key_path.split("."):
        if not isinstance(cursor, Mapping) or part not in cursor:
            raise KeyError(f"找不到設定鍵：{key_path}")
        cursor = cursor[part]
    return cursor


@dataclass(frozen=True)
class HookflowSettings:
    """Typed view over the ``hookflow`` section of the effective config."""

    data_dir: Path
    hooks_dir: Path
    history_limit: int = 500
    default_timeout_ms: int = 30000
    condition_timeout_ms: int = 30000
    watch_interval_seconds: float = 1.0
    debounce_seconds: float = 1.0
    max_workers: int = 4

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"


class ConfigLoader:
    def __init__(self, data_dir: Path | str | None = None) -> None:
        self.data_dir = resolve_data_dir(data_dir)

    def load_global(self) -> dict[str, Any]:
        return read_yaml(self.data_dir / CONFIG_FILENAME)

    def set_value(self, key_path: str, value: Any) -> None:
        """Persist one dotted key into ``<data_dir>/config.yaml``."""
        config_path = self.data_dir / CONFIG_FILENAME
        with file_lock(self.data_dir / f"{CONFIG_FILENAME}.lock"):
            write_yaml(config_path, set_config_value(read_yaml(config_path), key_path, value))

    def resolve(self, cli_overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
        effective = deep_merge(DEFAULT_CONFIG, self.load_global())
        if cli_overrides:
            effective = deep_merge(effective, cli_overrides)
        return effective

    def settings(self, effective: Mapping[str, Any] | None = None) -> HookflowSettings:
        config = effective if effective is not None else self.resolve()
        section = config.get("hookflow") or {}
        hooks_dir = Path(str(section.get("hooks_dir") or "hooks")).expanduser()
        if not hooks_dir.is_absolute():
            hooks_dir = self.data_dir / hooks_dir
        return HookflowSettings(
            data_dir=self.data_dir,
            hooks_dir=hooks_dir,
            history_limit=max(_read_int(section.get("history_limit"), 500), 1),
            default_timeout_ms=max(_read_int(section.get("default_timeout_ms"), 30000), 1),
            condition_timeout_ms=max(_read_int(section.get("condition_timeout_ms"), 30000), 1),
            watch_interval_seconds=_read_float(section.get("watch_interval_seconds"), 1.0),
            debounce_seconds=_read_float(section.get("debounce_seconds"), 1.0),
            max_workers=max(_read_int(section.get("max_workers"), 4), 1),
        )


def _read_int(value: Any, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _read_float(value: Any, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
