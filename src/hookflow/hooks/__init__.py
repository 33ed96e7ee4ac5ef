"""Hook system for hookflow."""

from .engine import HookEngine
from .errors import HookDisabled, HookError, HookNotFound, HookValidationError, TemplateNotFound
from .loader import load_hook, load_hooks, validate_hook
from .manager import HookManager
from .matcher import match
from .store import HookStore
from .types import ExecutionResult, Hook, HookAction, HookCondition, HookTrigger, TriggerEvent

__all__ = [
    "ExecutionResult",
    "Hook",
    "HookAction",
    "HookCondition",
    "HookDisabled",
    "HookEngine",
    "HookError",
    "HookManager",
    "HookNotFound",
    "HookStore",
    "HookTrigger",
    "HookValidationError",
    "TemplateNotFound",
    "TriggerEvent",
    "load_hook",
    "load_hooks",
    "match",
    "validate_hook",
]
