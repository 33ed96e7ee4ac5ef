"""Filesystem write helpers shared by the hook store, actions and the audit log."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover - Windows fallback
    fcntl = None

# flock 只擋其他行程，同一行程內的執行緒另外用這把鎖
_THREAD_LOCK = threading.Lock()


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def remove_file(path: Path) -> bool:
    """Delete ``path``; returns False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


@contextmanager
def file_lock(lock_path: Path) -> Iterator[None]:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with _THREAD_LOCK, lock_path.open("a+") as handle:
        if fcntl is None:
            yield
            return
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def append_jsonl(path: Path, payload: dict[str, Any]) -> None:
    """Append one JSON record per line; concurrent writers are serialized by a sidecar lock."""
    line = json.dumps(payload, ensure_ascii=False, default=str)
    with file_lock(path.parent / f"{path.name}.lock"):
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{line}\n")
