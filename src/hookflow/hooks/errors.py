"""Hook error definitions."""

from __future__ import annotations


class HookError(RuntimeError):
    """Base class for hook lookup and storage errors."""


class HookNotFound(HookError):
    """Raised when a hook id is not in the registry."""

    def __init__(self, hook_id: str) -> None:
        super().__init__(f"找不到 hook：{hook_id}")
        self.hook_id = hook_id


class HookDisabled(HookError):
    """Raised when execution is requested for a disabled hook."""

    def __init__(self, hook_id: str) -> None:
        super().__init__(f"hook 已停用：{hook_id}")
        self.hook_id = hook_id


class TemplateNotFound(HookError):
    """Raised when creating a hook from an unknown template id."""

    def __init__(self, template_id: str) -> None:
        super().__init__(f"找不到 hook 範本：{template_id}")
        self.template_id = template_id


class HookValidationError(HookError):
    """Raised when a hook document fails validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])
