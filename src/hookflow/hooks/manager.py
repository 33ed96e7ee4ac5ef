"""Hook manager: wires store, watcher, evaluator, dispatcher, engine and history."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from ..config import ConfigLoader, HookflowSettings
from ..logging import log_event
from ..process import CommandRunner
from ..providers import CompletionService, build_provider
from ..specgen import SpecBuilder
from .actions import ActionDispatcher, Notifier
from .conditions import ConditionEvaluator
from .engine import HookEngine
from .errors import HookDisabled, HookError, HookNotFound
from .history import ExecutionHistory, compute_stats
from .loader import normalize_document, validate_hook
from .matcher import match
from .store import HookStore
from .templates import list_templates
from .types import ExecutionResult, Hook, HookStats, HookTemplate, TriggerEvent, ValidationResult
from .watcher import FileWatcher


logger = logging.getLogger(__name__)

AuditSink = Callable[[dict[str, Any]], None]


class HookManager:
    """Single entry point used by the CLI, the HTTP API and the daemon."""

    def __init__(
        self,
        settings: HookflowSettings,
        *,
        config: Mapping[str, Any] | None = None,
        command_runner: CommandRunner | None = None,
        completion_service: CompletionService | None = None,
        spec_builder: SpecBuilder | None = None,
        notifier: Notifier | None = None,
        working_directory: str | Path | None = None,
        audit: AuditSink | None = None,
        watch: bool = True,
    ) -> None:
        config = config or {}
        self.settings = settings
        self.working_directory = str(working_directory or os.getcwd())
        self.audit = audit or (lambda event: log_event(event, data_dir=settings.data_dir))

        spec_cfg = config.get("spec") or {}
        if completion_service is None:
            completion_service = build_provider(config)
        self.watcher = (
            FileWatcher(
                self._on_file_change,
                base_dir=Path(self.working_directory),
                interval_seconds=settings.watch_interval_seconds,
                debounce_seconds=settings.debounce_seconds,
            )
            if watch
            else None
        )
        self.store = HookStore(
            settings.hooks_dir,
            watcher=self.watcher,
            audit=self.audit,
            default_timeout_ms=settings.default_timeout_ms,
        )
        self.evaluator = ConditionEvaluator(command_runner, command_timeout_ms=settings.condition_timeout_ms)
        self.dispatcher = ActionDispatcher(
            command_runner=command_runner,
            completion_service=completion_service,
            spec_builder=spec_builder
            or SpecBuilder(completion_service, output_dir=str(spec_cfg.get("output_dir") or "generated")),
            notifier=notifier,
            default_spec_path=str(spec_cfg.get("default_path") or ".hookflow/spec.yaml"),
            max_workers=settings.max_workers,
        )
        self.history_store = ExecutionHistory(settings.history_limit)
        self.engine = HookEngine(
            self.store.get,
            evaluator=self.evaluator,
            dispatcher=self.dispatcher,
            history=self.history_store,
            audit=self.audit,
        )
        self._executor = ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="hookflow-trigger")
        self._closed = False
        self._close_lock = threading.Lock()

    @classmethod
    def from_data_dir(
        cls,
        data_dir: Path | str | None = None,
        *,
        overrides: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> "HookManager":
        loader = ConfigLoader(data_dir)
        effective = loader.resolve(overrides)
        return cls(loader.settings(effective), config=effective, **kwargs)

    def __enter__(self) -> "HookManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def initialize(self) -> list[str]:
        """Load every hook document and start the file watches they need."""
        problems = self.store.load()
        for problem in problems:
            logger.warning("略過 hook 設定：%s", problem)
        return problems

    def list_hooks(
        self,
        *,
        category: str | None = None,
        enabled: bool | None = None,
        tags: Iterable[str] | None = None,
        search: str | None = None,
    ) -> list[Hook]:
        return self.store.list(category=category, enabled=enabled, tags=tags, search=search)

    def get_hook(self, hook_id: str) -> Hook:
        return self.store.require(hook_id)

    def create_hook(self, template: str | None = None, overrides: Mapping[str, Any] | None = None) -> Hook:
        return self.store.create(template, overrides)

    def update_hook(self, hook_id: str, changes: Mapping[str, Any]) -> Hook:
        return self.store.update(hook_id, changes)

    def toggle_hook(self, hook_id: str, enabled: bool | None = None) -> Hook:
        return self.store.toggle(hook_id, enabled)

    def delete_hook(self, hook_id: str) -> None:
        self.store.delete(hook_id)

    def validate(self, payload: Any) -> ValidationResult:
        if isinstance(payload, Mapping):
            payload = normalize_document(payload)
        return validate_hook(payload)

    def templates(self) -> list[HookTemplate]:
        return list_templates()

    def execute(
        self,
        hook_id: str,
        *,
        trigger: TriggerEvent | None = None,
        variables: Mapping[str, Any] | None = None,
        working_directory: str | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> ExecutionResult:
        return self.engine.execute(
            hook_id,
            trigger=trigger,
            variables=variables,
            working_directory=working_directory or self.working_directory,
            environment=environment,
        )

    def fire(
        self,
        trigger_type: str,
        data: Mapping[str, Any] | None = None,
        *,
        event: str | None = None,
        command: str | None = None,
    ) -> list[ExecutionResult]:
        """Run every enabled hook answering ``trigger_type``, in name order."""
        payload = dict(data or {})
        if event and "event" not in payload:
            payload["event"] = event
        if command and "command" not in payload:
            payload["command"] = command
        results: list[ExecutionResult] = []
        for hook in match(self.store.list(), trigger_type, event=event, command=command):
            try:
                results.append(self.execute(hook.id, trigger=TriggerEvent(type=trigger_type, data=payload)))
            except HookError as exc:
                logger.info("略過 hook %s：%s", hook.id, exc)
        return results

    def submit(self, hook_id: str, trigger: TriggerEvent) -> Future | None:
        """Queue a background execution; returns ``None`` once the manager is closed."""
        with self._close_lock:
            if self._closed:
                return None
            return self._executor.submit(self._run_background, hook_id, trigger)

    def stats(self) -> HookStats:
        return compute_stats(self.store.all(), self.history_store.snapshot())

    def history(self, limit: int = 50) -> list[ExecutionResult]:
        return self.history_store.recent(limit)

    def clear_history(self) -> None:
        self.history_store.clear()

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.watcher is not None:
            self.watcher.stop_all()
        self._executor.shutdown(wait=True)
        self.dispatcher.shutdown()

    def _on_file_change(self, hook_id: str, path: str, change_type: str) -> None:
        self.submit(hook_id, TriggerEvent(type="file_change", data={"filePath": path, "changeType": change_type}))

    def _run_background(self, hook_id: str, trigger: TriggerEvent) -> ExecutionResult | None:
        try:
            return self.execute(hook_id, trigger=trigger)
        except (HookNotFound, HookDisabled) as exc:
            logger.info("略過背景執行：%s", exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("Hook %s 背景執行失敗：%s", hook_id, exc, exc_info=True)
        return None
