"""Hook data models for hookflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

TRIGGER_TYPES = frozenset(
    {
        "manual",
        "file_change",
        "git_event",
        "schedule",
        "command",
        "startup",
        "shutdown",
        "spec_build",
        "spec_validate",
    }
)
LIFECYCLE_TRIGGERS = frozenset({"startup", "shutdown"})

ACTION_TYPES = frozenset(
    {
        "shell",
        "script",
        "file_create",
        "file_copy",
        "file_move",
        "file_delete",
        "git",
        "npm",
        "notification",
        "ai_generate",
        "spec_build",
        "custom",
    }
)

CONDITION_TYPES = frozenset({"file_exists", "command_success", "env_var", "git_status", "custom"})
CONDITION_OPERATORS = frozenset({"equals", "contains", "matches", "exists", "not_exists"})

ON_ERROR_POLICIES = frozenset({"continue", "stop", "retry"})

CATEGORIES = frozenset({"git", "build", "deploy", "maintenance", "notification", "development", "custom"})

GIT_EVENTS = frozenset(
    {"commit", "push", "pull", "branch_create", "branch_delete", "tag_create", "merge", "rebase"}
)

NOTIFICATION_LEVELS = frozenset({"info", "success", "warning", "error"})

DEFAULT_TIMEOUT_MS = 30000
CONDITIONS_NOT_MET = "Hook conditions not met"


@dataclass(frozen=True)
class HookTrigger:
    type: str
    file_pattern: str | None = None
    schedule: str | None = None
    event: str | None = None
    command: str | None = None

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        for key in ("file_pattern", "schedule", "event", "command"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass(frozen=True)
class HookAction:
    """One step of a hook.

    ``params`` holds the type-specific fields (``command``, ``file``,
    ``content``, ``prompt`` ...); each handler reads only the keys it owns.
    """

    type: str
    id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    timeout: int | None = None
    continue_on_error: bool = False

    def param(self, key: str, default: Any = None) -> Any:
        value = self.params.get(key)
        return default if value is None else value

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.id is not None:
            payload["id"] = self.id
        payload["type"] = self.type
        payload.update(self.params)
        if self.timeout is not None:
            payload["timeout"] = self.timeout
        if self.continue_on_error:
            payload["continue_on_error"] = True
        return payload


@dataclass(frozen=True)
class HookCondition:
    type: str
    parameter: str = ""
    value: Any = None
    operator: str | None = None

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "parameter": self.parameter}
        if self.value is not None:
            payload["value"] = self.value
        if self.operator is not None:
            payload["operator"] = self.operator
        return payload


@dataclass(frozen=True)
class Hook:
    id: str
    name: str
    description: str
    trigger: HookTrigger
    actions: tuple[HookAction, ...]
    conditions: tuple[HookCondition, ...] = ()
    variables: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    timeout: int = DEFAULT_TIMEOUT_MS
    retries: int = 0
    on_error: str = "stop"
    stop_on_retry_exhausted: bool = False
    version: str | None = None
    author: str | None = None
    tags: tuple[str, ...] = ()
    category: str | None = None
    created: str | None = None
    modified: str | None = None

    @property
    def watches_files(self) -> bool:
        return self.enabled and self.trigger.type == "file_change" and bool(self.trigger.file_pattern)

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }
        for key in ("version", "author", "category"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.tags:
            payload["tags"] = list(self.tags)
        payload["enabled"] = self.enabled
        payload["trigger"] = self.trigger.to_document()
        if self.conditions:
            payload["conditions"] = [condition.to_document() for condition in self.conditions]
        payload["actions"] = [action.to_document() for action in self.actions]
        if self.variables:
            payload["variables"] = dict(self.variables)
        payload["timeout"] = self.timeout
        payload["retries"] = self.retries
        payload["on_error"] = self.on_error
        if self.stop_on_retry_exhausted:
            payload["stop_on_retry_exhausted"] = True
        if self.created is not None:
            payload["created"] = self.created
        if self.modified is not None:
            payload["modified"] = self.modified
        return payload


@dataclass(frozen=True)
class TriggerEvent:
    type: str = "manual"
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionContext:
    hook_id: str
    working_directory: str
    environment: dict[str, str]
    variables: dict[str, Any]
    trigger: TriggerEvent
    timestamp: str


@dataclass(frozen=True)
class ActionResult:
    action_id: str
    success: bool
    duration_ms: int
    action_type: str | None = None
    output: str | None = None
    error: str | None = None
    exit_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_type": self.action_type,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
        }


@dataclass(frozen=True)
class ExecutionResult:
    hook_id: str
    success: bool
    duration_ms: int
    actions: tuple[ActionResult, ...]
    timestamp: str
    trigger_type: str = "manual"
    error: str | None = None

    @property
    def gated(self) -> bool:
        return self.error == CONDITIONS_NOT_MET and not self.actions

    @property
    def failed_actions(self) -> list[ActionResult]:
        return [result for result in self.actions if not result.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook_id": self.hook_id,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "trigger_type": self.trigger_type,
            "timestamp": self.timestamp,
            "error": self.error,
            "actions": [result.to_dict() for result in self.actions],
        }


@dataclass(frozen=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class HookTemplate:
    id: str
    name: str
    description: str
    category: str
    config: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "config": self.config,
        }


@dataclass(frozen=True)
class HookStats:
    total: int
    enabled: int
    disabled: int
    by_category: dict[str, int]
    total_executions: int
    success_rate: float
    last_executed: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "enabled": self.enabled,
            "disabled": self.disabled,
            "by_category": dict(self.by_category),
            "total_executions": self.total_executions,
            "success_rate": self.success_rate,
            "last_executed": self.last_executed,
        }
