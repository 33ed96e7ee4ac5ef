"""Hook registry backed by a directory of YAML documents."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import yaml

from ..fs import atomic_write_text, remove_file
from .errors import HookNotFound, HookValidationError, TemplateNotFound
from .loader import MISSING_ACTIONS_ERROR, hook_from_document, load_hooks, normalize_document, validate_hook
from .templates import get_template
from .types import DEFAULT_TIMEOUT_MS, Hook
from .watcher import FileWatcher


logger = logging.getLogger(__name__)

AuditSink = Callable[[dict[str, Any]], None]


class HookStore:
    """Authoritative ``id -> Hook`` registry.

    Every mutation writes the document first, then updates memory and
    re-syncs the file watch, all under one lock so a delete racing a toggle
    cannot leave a stale watch or resurrect an entry.
    """

    def __init__(
        self,
        hooks_dir: Path,
        *,
        watcher: FileWatcher | None = None,
        audit: AuditSink | None = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self.hooks_dir = hooks_dir
        self.default_timeout_ms = default_timeout_ms
        self.watcher = watcher
        self.audit = audit
        self.load_problems: list[str] = []
        self._hooks: dict[str, Hook] = {}
        self._paths: dict[str, Path] = {}
        self._lock = threading.RLock()

    def load(self) -> list[str]:
        """Reload every document; invalid files are skipped and returned as warnings."""
        self.hooks_dir.mkdir(parents=True, exist_ok=True)
        loaded, problems = load_hooks(self.hooks_dir, default_timeout_ms=self.default_timeout_ms)
        hooks: dict[str, Hook] = {}
        paths: dict[str, Path] = {}
        for path, hook in loaded:
            if hook.id in hooks:
                problems.append(f"{path.name}：hook id 重複（{hook.id}），已覆蓋 {paths[hook.id].name}")
            hooks[hook.id] = hook
            paths[hook.id] = path
        with self._lock:
            previous = set(self._hooks)
            self._hooks = hooks
            self._paths = paths
            self.load_problems = problems
            if self.watcher is not None:
                for stale_id in previous - set(self._hooks):
                    self.watcher.stop(stale_id)
                for hook in self._hooks.values():
                    self.watcher.sync(hook)
        logger.info("已載入 %s 個 hook（略過 %s 個）", len(hooks), len(problems))
        return problems

    def get(self, hook_id: str) -> Hook | None:
        with self._lock:
            return self._hooks.get(hook_id)

    def require(self, hook_id: str) -> Hook:
        hook = self.get(hook_id)
        if hook is None:
            raise HookNotFound(hook_id)
        return hook

    def all(self) -> list[Hook]:
        with self._lock:
            return list(self._hooks.values())

    def list(
        self,
        *,
        category: str | None = None,
        enabled: bool | None = None,
        tags: Iterable[str] | None = None,
        search: str | None = None,
    ) -> list[Hook]:
        hooks = self.all()
        if category:
            hooks = [hook for hook in hooks if hook.category == category]
        if enabled is not None:
            hooks = [hook for hook in hooks if hook.enabled == enabled]
        wanted_tags = set(tags or [])
        if wanted_tags:
            hooks = [hook for hook in hooks if wanted_tags.intersection(hook.tags)]
        if search:
            needle = search.lower()
            hooks = [
                hook
                for hook in hooks
                if needle in hook.name.lower()
                or needle in hook.description.lower()
                or any(needle in tag.lower() for tag in hook.tags)
            ]
        return sorted(hooks, key=lambda hook: (hook.name.casefold(), hook.id))

    def path_for(self, hook_id: str) -> Path:
        """Document path for ``hook_id``: where it was loaded from, else ``<id>.yaml``."""
        _check_hook_id(hook_id)
        with self._lock:
            known = self._paths.get(hook_id)
        return known or self.hooks_dir / f"{hook_id}.yaml"

    def save(self, hook: Hook) -> Hook:
        content = yaml.safe_dump(hook.to_document(), allow_unicode=True, sort_keys=False)
        with self._lock:
            path = self.path_for(hook.id)
            atomic_write_text(path, content)
            self._hooks[hook.id] = hook
            self._paths[hook.id] = path
            if self.watcher is not None:
                self.watcher.sync(hook)
        return hook

    def create(self, template: str | None = None, overrides: Mapping[str, Any] | None = None) -> Hook:
        now = _now_iso()
        if template:
            found = get_template(template)
            if found is None:
                raise TemplateNotFound(template)
            document: dict[str, Any] = {
                "name": found.name,
                "description": found.description,
                "enabled": True,
                "trigger": {"type": "manual"},
                "actions": [],
                "category": found.category,
            }
            document.update(normalize_document(found.config))
        else:
            document = {
                "name": "New Hook",
                "description": "A new agent hook",
                "enabled": True,
                "trigger": {"type": "manual"},
                "actions": [],
                "category": "custom",
            }
        if overrides:
            document.update(normalize_document(overrides))
        with self._lock:
            document["id"] = self._next_id()
            document["created"] = now
            document["modified"] = now
            hook = self.save(self._build_hook(document, allow_empty_actions=True))
        logger.info("已建立 hook：%s", hook.id)
        self._audit("hook_created", hook.id, template=template)
        return hook

    def update(self, hook_id: str, changes: Mapping[str, Any]) -> Hook:
        with self._lock:
            current = self.require(hook_id)
            document = current.to_document()
            document.update(normalize_document(changes))
            document["id"] = current.id
            document["created"] = current.created
            document["modified"] = _now_iso()
            hook = self.save(self._build_hook(document))
        self._audit("hook_updated", hook_id, fields=sorted(str(key) for key in changes))
        return hook

    def toggle(self, hook_id: str, enabled: bool | None = None) -> Hook:
        with self._lock:
            current = self.require(hook_id)
            target = (not current.enabled) if enabled is None else bool(enabled)
            hook = self.save(replace(current, enabled=target, modified=_now_iso()))
        logger.info("hook %s 已%s", hook_id, "啟用" if hook.enabled else "停用")
        self._audit("hook_toggled", hook_id, enabled=hook.enabled)
        return hook

    def delete(self, hook_id: str) -> None:
        with self._lock:
            if hook_id not in self._hooks:
                raise HookNotFound(hook_id)
            if self.watcher is not None:
                self.watcher.stop(hook_id)
            path = self.path_for(hook_id)
            self._hooks.pop(hook_id, None)
            self._paths.pop(hook_id, None)
            if not remove_file(path):
                logger.info("hook %s 的設定檔已不存在", hook_id)
        logger.info("已刪除 hook：%s", hook_id)
        self._audit("hook_deleted", hook_id)

    def _build_hook(self, document: dict[str, Any], *, allow_empty_actions: bool = False) -> Hook:
        """Validate ``document`` and build the hook; nothing is written on failure."""
        errors = validate_hook(document).errors
        if allow_empty_actions and document.get("actions") == []:
            # 空白 hook 可先建立，之後再補 actions
            errors = [error for error in errors if error != MISSING_ACTIONS_ERROR]
        if errors:
            raise HookValidationError(f"hook 設定無效：{'; '.join(errors)}", errors)
        try:
            return hook_from_document(document, default_timeout_ms=self.default_timeout_ms)
        except (TypeError, ValueError) as exc:
            raise HookValidationError(f"hook 設定無效：{exc}", [str(exc)]) from exc

    def _next_id(self) -> str:
        base = f"hook-{int(time.time() * 1000)}"
        candidate = base
        suffix = 1
        while candidate in self._hooks or (self.hooks_dir / f"{candidate}.yaml").exists():
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    def _audit(self, event: str, hook_id: str, **extra: Any) -> None:
        if self.audit is None:
            return
        try:
            self.audit({"event": event, "hook_id": hook_id, **extra})
        except Exception as exc:  # noqa: BLE001
            logger.error("寫入 hook 事件失敗：%s", exc, exc_info=True)


def _check_hook_id(hook_id: str) -> None:
    if not hook_id or hook_id.strip() != hook_id:
        raise HookValidationError(f"hook id 格式不正確：{hook_id!r}")
    if hook_id in {".", ".."} or ".." in hook_id or any(sep in hook_id for sep in ("/", "\\")):
        raise HookValidationError(f"hook id 格式不正確：{hook_id!r}")


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="milliseconds")
