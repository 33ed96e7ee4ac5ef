"""JSONL audit trail for hook lifecycle events."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import resolve_data_dir
from .fs import append_jsonl

_LOGGER = logging.getLogger("hookflow.logging")


def log_event(event: dict[str, Any], *, data_dir: Path | None = None) -> None:
    payload = _build_payload(event)
    try:
        append_jsonl(_log_path(data_dir, "events.log"), payload)
    except OSError as exc:
        _LOGGER.error("寫入事件紀錄失敗：%s", exc, exc_info=True)


def _build_payload(source: dict[str, Any]) -> dict[str, Any]:
    payload = dict(source)
    payload.setdefault("ts", _now_iso())
    payload.setdefault("level", "INFO")
    payload.setdefault("hook_id", None)
    return payload


def _log_path(data_dir: Path | None, filename: str) -> Path:
    return resolve_data_dir(data_dir) / "logs" / filename


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")
