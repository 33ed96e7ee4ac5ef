"""Bounded in-memory execution history and derived statistics."""

from __future__ import annotations

import threading
from collections import Counter, deque
from typing import Iterable

from .types import ExecutionResult, Hook, HookStats


class ExecutionHistory:
    """Append-only, thread-safe ring of execution results; oldest evicted first."""

    def __init__(self, max_entries: int = 500) -> None:
        self._entries: deque[ExecutionResult] = deque(maxlen=max(max_entries, 1))
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, result: ExecutionResult) -> None:
        with self._lock:
            self._entries.append(result)

    def snapshot(self) -> list[ExecutionResult]:
        with self._lock:
            return list(self._entries)

    def recent(self, limit: int = 50) -> list[ExecutionResult]:
        """Return up to ``limit`` most recent results, newest first."""
        if limit <= 0:
            return []
        entries = self.snapshot()[-limit:]
        entries.reverse()
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def compute_stats(hooks: Iterable[Hook], executions: list[ExecutionResult]) -> HookStats:
    hook_list = list(hooks)
    enabled = sum(1 for hook in hook_list if hook.enabled)
    by_category = Counter(hook.category or "custom" for hook in hook_list)
    total_executions = len(executions)
    successful = sum(1 for result in executions if result.success)
    return HookStats(
        total=len(hook_list),
        enabled=enabled,
        disabled=len(hook_list) - enabled,
        by_category=dict(by_category),
        total_executions=total_executions,
        success_rate=successful / total_executions if total_executions else 0.0,
        last_executed=executions[-1].timestamp if executions else None,
    )
