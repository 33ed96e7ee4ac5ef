"""Precondition checks evaluated before a hook's actions run."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable

from ..process import CommandError, CommandRunner, run_command
from .types import ExecutionContext, HookCondition


logger = logging.getLogger(__name__)

ConditionChecker = Callable[[HookCondition, ExecutionContext], bool]


class ConditionEvaluator:
    """Evaluate conditions left to right; the first false one ends evaluation.

    ``git_status`` and ``custom`` hold until a checker is registered for them.
    """

    def __init__(self, command_runner: CommandRunner | None = None, *, command_timeout_ms: int = 30000) -> None:
        self.command_runner = command_runner or run_command
        self.command_timeout_ms = command_timeout_ms
        self._checkers: dict[str, ConditionChecker] = {
            "file_exists": self._check_file_exists,
            "command_success": self._check_command_success,
            "env_var": self._check_env_var,
        }

    def register_checker(self, condition_type: str, checker: ConditionChecker) -> None:
        self._checkers[condition_type] = checker

    def evaluate(self, conditions: Iterable[HookCondition], context: ExecutionContext) -> bool:
        for condition in conditions:
            if not self.check(condition, context):
                logger.info("Hook %s 條件未滿足：%s %s", context.hook_id, condition.type, condition.parameter)
                return False
        return True

    def check(self, condition: HookCondition, context: ExecutionContext) -> bool:
        checker = self._checkers.get(condition.type)
        if checker is None:
            return True
        try:
            return bool(checker(condition, context))
        except Exception as exc:  # noqa: BLE001
            logger.error("檢查條件 %s 失敗：%s", condition.type, exc, exc_info=True)
            return False

    def _check_file_exists(self, condition: HookCondition, context: ExecutionContext) -> bool:
        if not condition.parameter:
            return False
        path = Path(condition.parameter).expanduser()
        if not path.is_absolute():
            path = Path(context.working_directory) / path
        try:
            return os.path.exists(path)
        except (OSError, ValueError):
            return False

    def _check_command_success(self, condition: HookCondition, context: ExecutionContext) -> bool:
        if not condition.parameter:
            return False
        try:
            result = self.command_runner(
                condition.parameter,
                cwd=context.working_directory,
                env=context.environment,
                timeout_ms=self.command_timeout_ms,
            )
        except CommandError as exc:
            logger.info("條件指令執行失敗：%s", exc)
            return False
        return result.exit_code == 0

    def _check_env_var(self, condition: HookCondition, context: ExecutionContext) -> bool:
        current = context.environment.get(condition.parameter)
        if condition.value is None or condition.value == "":
            return bool(current)
        expected = str(condition.value)
        if condition.operator == "equals":
            return current == expected
        if condition.operator == "contains":
            return bool(current) and expected in current
        return bool(current)
