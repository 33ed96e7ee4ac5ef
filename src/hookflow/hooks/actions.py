"""Action handlers: execute one typed action and report an ActionResult."""

from __future__ import annotations

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Callable

from ..fs import atomic_write_text
from ..process import CommandError, CommandRunner, run_command
from ..providers import CompletionService, ProviderError
from ..specgen import GenerationError, SpecBuilder
from .template import render_template
from .types import DEFAULT_TIMEOUT_MS, ActionResult, ExecutionContext, HookAction


logger = logging.getLogger(__name__)

ActionHandler = Callable[[HookAction, ExecutionContext, int], "str | None"]
Notifier = Callable[[str, str, str], None]


class ActionFailed(Exception):
    """Raised by handlers to report a failure with optional exit code and output."""

    def __init__(self, message: str, *, exit_code: int | None = None, output: str | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


def print_notification(title: str, message: str, level: str) -> None:
    print(f"🔔 {title}: {message}", flush=True)
    log = logger.warning if level in {"warning", "error"} else logger.info
    log("通知（%s）%s：%s", level, title, message)


class ActionDispatcher:
    """Dispatch actions by ``type``; never raises, every failure lands in the result."""

    def __init__(
        self,
        *,
        command_runner: CommandRunner | None = None,
        completion_service: CompletionService | None = None,
        spec_builder: SpecBuilder | None = None,
        notifier: Notifier | None = None,
        default_spec_path: str = ".hookflow/spec.yaml",
        max_workers: int = 4,
    ) -> None:
        self.command_runner = command_runner or run_command
        self.completion_service = completion_service
        self.spec_builder = spec_builder or SpecBuilder(completion_service)
        self.notifier = notifier or print_notification
        self.default_spec_path = default_spec_path
        self._pool = ThreadPoolExecutor(max_workers=max(max_workers, 1), thread_name_prefix="hookflow-action")
        self._handlers: dict[str, ActionHandler] = {
            "shell": self._run_shell,
            "script": self._run_script,
            "file_create": self._run_file_create,
            "file_copy": self._run_file_copy,
            "file_move": self._run_file_move,
            "file_delete": self._run_file_delete,
            "git": self._run_git,
            "npm": self._run_npm,
            "notification": self._run_notification,
            "ai_generate": self._run_ai_generate,
            "spec_build": self._run_spec_build,
        }

    def register_handler(self, action_type: str, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False)

    def dispatch(
        self,
        action: HookAction,
        context: ExecutionContext,
        *,
        index: int = 0,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ActionResult:
        action_id = action.id or f"action-{index + 1}"
        timeout_ms = action.timeout or default_timeout_ms
        start = time.monotonic()
        output: str | None = None
        error: str | None = None
        exit_code: int | None = None
        handler = self._handlers.get(action.type)
        try:
            if handler is None:
                raise ActionFailed(f"未知的 action 類型：{action.type}")
            output = handler(action, context, timeout_ms)
            if action.type in {"shell", "script", "git", "npm"}:
                exit_code = 0
        except ActionFailed as exc:
            error = str(exc)
            exit_code = exc.exit_code
            output = exc.output
        except (CommandError, ProviderError, GenerationError, OSError) as exc:
            error = str(exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("Hook %s 執行 action %s 發生例外：%s", context.hook_id, action_id, exc, exc_info=True)
            error = str(exc) or exc.__class__.__name__
        duration_ms = int((time.monotonic() - start) * 1000)
        if error is not None:
            logger.warning("Hook %s 的 action %s（%s）失敗：%s", context.hook_id, action_id, action.type, error)
        return ActionResult(
            action_id=action_id,
            success=error is None,
            duration_ms=duration_ms,
            action_type=action.type,
            output=output,
            error=error,
            exit_code=exit_code,
        )

    def _render(self, action: HookAction, key: str, context: ExecutionContext, default: Any = None) -> Any:
        value = action.param(key, default)
        return render_template(value, context)

    def _require(self, action: HookAction, key: str, context: ExecutionContext) -> str:
        value = self._render(action, key, context)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ActionFailed(f"{action.type} action 缺少 {key}")
        return str(value)

    def _resolve_path(self, raw: str, context: ExecutionContext) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = Path(context.working_directory) / path
        return path

    def _run_process(self, command: str | list[str], context: ExecutionContext, timeout_ms: int) -> str:
        result = self.command_runner(
            command,
            cwd=context.working_directory,
            env=context.environment,
            timeout_ms=timeout_ms,
        )
        stdout = result.stdout.rstrip("\n")
        if result.exit_code != 0:
            message = result.stderr.strip() or f"指令結束碼 {result.exit_code}"
            raise ActionFailed(message, exit_code=result.exit_code, output=stdout or None)
        return stdout

    def _run_shell(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        return self._run_process(self._require(action, "command", context), context, timeout_ms)

    def _run_script(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        script = self._require(action, "script", context)
        argv = ["sh", script] if os.name == "posix" else ["cmd", "/c", script]
        return self._run_process(argv, context, timeout_ms)

    def _tool_args(self, action: HookAction, context: ExecutionContext) -> list[str]:
        explicit = action.param("args")
        if isinstance(explicit, list):
            return [str(item) for item in render_template(explicit, context)]
        # plain whitespace split: quoted arguments containing spaces need ``args``
        return self._require(action, "command", context).split()

    def _run_git(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        return self._run_process(["git", *self._tool_args(action, context)], context, timeout_ms)

    def _run_npm(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        return self._run_process(["npm", *self._tool_args(action, context)], context, timeout_ms)

    def _run_file_create(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        target = self._resolve_path(self._require(action, "file", context), context)
        content = self._render(action, "content", context, "")
        atomic_write_text(target, str(content))
        return f"已建立檔案：{target}"

    def _run_file_copy(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        source = self._resolve_path(self._require(action, "source", context), context)
        target = self._resolve_path(self._require(action, "target", context), context)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return f"已複製檔案：{source} -> {target}"

    def _run_file_move(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        source = self._resolve_path(self._require(action, "source", context), context)
        target = self._resolve_path(self._require(action, "target", context), context)
        if not source.exists():
            raise ActionFailed(f"來源檔案不存在：{source}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        return f"已移動檔案：{source} -> {target}"

    def _run_file_delete(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        target = self._resolve_path(self._require(action, "file", context), context)
        if target.is_dir():
            raise ActionFailed(f"不支援刪除資料夾：{target}")
        target.unlink()
        return f"已刪除檔案：{target}"

    def _run_notification(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        message = str(self._render(action, "message", context, ""))
        title = str(self._render(action, "title", context, "Notification"))
        level = str(action.param("level", "info"))
        self.notifier(title, message, level)
        return f"{title}: {message}"

    def _run_ai_generate(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        service = self.completion_service
        if service is None:
            raise ActionFailed("未設定 AI 服務")
        prompt = self._require(action, "prompt", context)
        messages: list[dict[str, str]] = []
        system = self._render(action, "system", context)
        if system:
            messages.append({"role": "system", "content": str(system)})
        messages.append({"role": "user", "content": prompt})
        text = self._call_with_timeout(lambda: service.complete(messages), timeout_ms)
        output_file = self._render(action, "output_file", context)
        if output_file:
            atomic_write_text(self._resolve_path(str(output_file), context), text)
        return text

    def _run_spec_build(self, action: HookAction, context: ExecutionContext, timeout_ms: int) -> str:
        spec_file = str(self._render(action, "spec_file", context, self.default_spec_path))
        base_dir = Path(context.working_directory)
        result = self._call_with_timeout(lambda: self.spec_builder.build(spec_file, base_dir=base_dir), timeout_ms)
        return f"已產生 {result.file_count} 個檔案，耗時 {result.duration_ms} ms"

    def _call_with_timeout(self, func: Callable[[], Any], timeout_ms: int) -> Any:
        future = self._pool.submit(func)
        try:
            return future.result(timeout=timeout_ms / 1000)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ActionFailed(f"action 執行逾時（{timeout_ms} ms）") from exc
