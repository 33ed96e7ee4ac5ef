"""Hook execution engine: condition gate, ordered actions, error policy, history."""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from .actions import ActionDispatcher
from .conditions import ConditionEvaluator
from .errors import HookDisabled, HookNotFound
from .history import ExecutionHistory
from .types import CONDITIONS_NOT_MET, ActionResult, ExecutionContext, ExecutionResult, Hook, HookAction, TriggerEvent


logger = logging.getLogger(__name__)

HookLookup = Callable[[str], "Hook | None"]
AuditSink = Callable[[dict[str, Any]], None]


def build_context(
    hook: Hook,
    *,
    trigger: TriggerEvent | None = None,
    variables: Mapping[str, Any] | None = None,
    working_directory: str | None = None,
    environment: Mapping[str, str] | None = None,
) -> ExecutionContext:
    env = dict(os.environ)
    if environment:
        env.update({str(key): str(value) for key, value in environment.items()})
    merged_variables = dict(hook.variables)
    if variables:
        merged_variables.update(variables)
    return ExecutionContext(
        hook_id=hook.id,
        working_directory=str(working_directory or os.getcwd()),
        environment=env,
        variables=merged_variables,
        trigger=trigger or TriggerEvent(),
        timestamp=datetime.now().astimezone().isoformat(timespec="milliseconds"),
    )


class HookEngine:
    """Run one hook to completion and record the result.

    Lookup and disabled checks raise; everything after context construction
    resolves to an :class:`ExecutionResult`.
    """

    def __init__(
        self,
        lookup: HookLookup,
        *,
        evaluator: ConditionEvaluator,
        dispatcher: ActionDispatcher,
        history: ExecutionHistory,
        audit: AuditSink | None = None,
    ) -> None:
        self.lookup = lookup
        self.evaluator = evaluator
        self.dispatcher = dispatcher
        self.history = history
        self.audit = audit

    def execute(
        self,
        hook_id: str,
        *,
        trigger: TriggerEvent | None = None,
        variables: Mapping[str, Any] | None = None,
        working_directory: str | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> ExecutionResult:
        hook = self.lookup(hook_id)
        if hook is None:
            raise HookNotFound(hook_id)
        if not hook.enabled:
            raise HookDisabled(hook_id)

        start = time.monotonic()
        context = build_context(
            hook,
            trigger=trigger,
            variables=variables,
            working_directory=working_directory,
            environment=environment,
        )
        actions: list[ActionResult] = []
        error: str | None = None
        try:
            if hook.conditions and not self.evaluator.evaluate(hook.conditions, context):
                error = CONDITIONS_NOT_MET
            else:
                self._run_actions(hook, context, actions)
        except Exception as exc:  # noqa: BLE001
            logger.error("Hook %s 執行失敗：%s", hook.id, exc, exc_info=True)
            error = str(exc) or exc.__class__.__name__

        success = error is None and all(result.success for result in actions)
        result = ExecutionResult(
            hook_id=hook.id,
            success=success,
            duration_ms=int((time.monotonic() - start) * 1000),
            actions=tuple(actions),
            timestamp=context.timestamp,
            trigger_type=context.trigger.type,
            error=error,
        )
        self.history.append(result)
        self._record(result)
        return result

    def _run_actions(self, hook: Hook, context: ExecutionContext, results: list[ActionResult]) -> None:
        for index, action in enumerate(hook.actions):
            result = self.dispatcher.dispatch(action, context, index=index, default_timeout_ms=hook.timeout)
            results.append(result)
            if result.success or action.continue_on_error:
                continue
            if hook.on_error == "stop":
                logger.info("Hook %s 在 action %s 失敗後停止", hook.id, result.action_id)
                return
            if hook.on_error == "retry" and hook.retries > 0:
                if self._retry(hook, action, context, index, results):
                    continue
                if hook.stop_on_retry_exhausted:
                    logger.info("Hook %s 的 action %s 重試用盡，停止執行", hook.id, result.action_id)
                    return

    def _retry(
        self,
        hook: Hook,
        action: HookAction,
        context: ExecutionContext,
        index: int,
        results: list[ActionResult],
    ) -> bool:
        for attempt in range(1, hook.retries + 1):
            logger.info("Hook %s 重試 action %s（第 %s/%s 次）", hook.id, results[-1].action_id, attempt, hook.retries)
            retry_result = self.dispatcher.dispatch(action, context, index=index, default_timeout_ms=hook.timeout)
            results[-1] = retry_result
            if retry_result.success:
                return True
        return False

    def _record(self, result: ExecutionResult) -> None:
        if result.success:
            logger.info("Hook %s 執行完成（%s ms）", result.hook_id, result.duration_ms)
        elif result.gated:
            logger.info("Hook %s 條件未滿足，未執行任何 action", result.hook_id)
        else:
            failed = result.failed_actions
            detail = "; ".join(f"{item.action_id}（{item.action_type}）：{item.error}" for item in failed)
            logger.warning("Hook %s 執行失敗：%s", result.hook_id, detail or result.error)
        if self.audit is None:
            return
        try:
            self.audit(
                {
                    "event": "hook_executed",
                    "level": "INFO" if result.success else "WARNING",
                    "hook_id": result.hook_id,
                    "success": result.success,
                    "gated": result.gated,
                    "trigger_type": result.trigger_type,
                    "duration_ms": result.duration_ms,
                    "error": result.error,
                    "failed_actions": [item.action_id for item in result.failed_actions],
                }
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("寫入執行紀錄失敗：%s", exc, exc_info=True)
