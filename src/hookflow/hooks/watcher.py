"""Polling file watcher for hooks with ``file_change`` triggers."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .types import Hook


logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, str, str], None]
Snapshot = dict[str, tuple[int, int]]

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, e.g. ``{src,test}/**/*``."""
    match = _BRACE_RE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def scan_pattern(pattern: str, base_dir: Path) -> Snapshot:
    """Snapshot ``{path: (mtime_ns, size)}`` for every file matching ``pattern``."""
    if not pattern.strip():
        raise ValueError("file_pattern 不可為空")
    snapshot: Snapshot = {}
    for candidate in expand_braces(pattern):
        path = Path(candidate).expanduser()
        if path.is_absolute():
            root = Path(path.anchor)
            relative = str(path.relative_to(root))
        else:
            root = base_dir
            relative = candidate
        for match in root.glob(relative):
            try:
                if not match.is_file():
                    continue
                stat = match.stat()
            except OSError:
                continue
            snapshot[str(match)] = (stat.st_mtime_ns, stat.st_size)
    return snapshot


@dataclass
class _WatchHandle:
    hook_id: str
    pattern: str
    stop_event: threading.Event
    thread: threading.Thread


class FileWatcher:
    """Keeps at most one polling thread per hook id."""

    def __init__(
        self,
        on_change: ChangeCallback,
        *,
        base_dir: Path | None = None,
        interval_seconds: float = 1.0,
        debounce_seconds: float = 1.0,
    ) -> None:
        self.on_change = on_change
        self.base_dir = base_dir or Path.cwd()
        self.interval_seconds = max(interval_seconds, 0.05)
        self.debounce_seconds = max(debounce_seconds, 0.0)
        self._handles: dict[str, _WatchHandle] = {}
        self._lock = threading.RLock()

    def active_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._handles)

    def is_watching(self, hook_id: str) -> bool:
        with self._lock:
            return hook_id in self._handles

    def sync(self, hook: Hook) -> bool:
        """Start or stop the watch so it matches the hook's current state."""
        if hook.watches_files:
            return self.start(hook.id, str(hook.trigger.file_pattern))
        self.stop(hook.id)
        return False

    def start(self, hook_id: str, pattern: str) -> bool:
        with self._lock:
            existing = self._handles.get(hook_id)
            if existing is not None:
                if existing.pattern == pattern:
                    return True
                self._stop_locked(hook_id)
            try:
                snapshot = scan_pattern(pattern, self.base_dir)
            except (ValueError, OSError, NotImplementedError) as exc:
                logger.error("Hook %s 的檔案監看無法啟動（%s）：%s", hook_id, pattern, exc)
                return False
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._watch_loop,
                name=f"hookflow-watcher-{hook_id}",
                args=(hook_id, pattern, snapshot, stop_event),
                daemon=True,
            )
            self._handles[hook_id] = _WatchHandle(hook_id=hook_id, pattern=pattern, stop_event=stop_event, thread=thread)
            thread.start()
            logger.info("已開始監看 hook %s：%s", hook_id, pattern)
            return True

    def stop(self, hook_id: str) -> bool:
        with self._lock:
            return self._stop_locked(hook_id)

    def stop_all(self) -> None:
        with self._lock:
            for hook_id in list(self._handles):
                self._stop_locked(hook_id)

    def _stop_locked(self, hook_id: str) -> bool:
        handle = self._handles.pop(hook_id, None)
        if handle is None:
            return False
        handle.stop_event.set()
        if handle.thread is not threading.current_thread():
            handle.thread.join(timeout=self.interval_seconds + 5)
        logger.info("已停止監看 hook %s", hook_id)
        return True

    def _watch_loop(self, hook_id: str, pattern: str, snapshot: Snapshot, stop_event: threading.Event) -> None:
        last_emitted: dict[str, float] = {}
        while not stop_event.wait(self.interval_seconds):
            try:
                new_snapshot = scan_pattern(pattern, self.base_dir)
            except Exception as exc:  # noqa: BLE001
                logger.error("Hook %s 監看掃描失敗：%s", hook_id, exc, exc_info=True)
                continue
            for path, meta in new_snapshot.items():
                previous = snapshot.get(path)
                if previous == meta:
                    continue
                change_type = "created" if previous is None else "modified"
                self._emit(hook_id, path, change_type, last_emitted)
            snapshot = new_snapshot

    def _emit(self, hook_id: str, path: str, change_type: str, last_emitted: dict[str, float]) -> None:
        now = time.monotonic()
        last_time = last_emitted.get(path)
        if last_time is not None and (now - last_time) < self.debounce_seconds:
            return
        last_emitted[path] = now
        try:
            self.on_change(hook_id, path, change_type)
        except Exception as exc:  # noqa: BLE001
            logger.error("Hook %s 監看回呼失敗：%s", hook_id, exc, exc_info=True)
