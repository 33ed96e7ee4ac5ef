"""Built-in hook templates."""

from __future__ import annotations

from copy import deepcopy

from .types import HookTemplate


_BUILTIN_TEMPLATES: tuple[HookTemplate, ...] = (
    HookTemplate(
        id="git-auto-commit",
        name="Git Auto Commit",
        description="Automatically commit changes when files are modified",
        category="git",
        config={
            "trigger": {"type": "file_change", "file_pattern": "src/**/*"},
            "actions": [
                {"id": "git-add", "type": "git", "command": "add ."},
                {
                    "id": "git-commit",
                    "type": "git",
                    "args": ["commit", "-m", "Auto-commit: {{timestamp}}"],
                },
            ],
        },
    ),
    HookTemplate(
        id="build-on-change",
        name="Build on File Change",
        description="Automatically build project when source files change",
        category="build",
        config={
            "trigger": {"type": "file_change", "file_pattern": "src/**/*"},
            "actions": [
                {"id": "npm-build", "type": "npm", "command": "run build"},
                {
                    "id": "notify",
                    "type": "notification",
                    "message": "Project built successfully at {{timestamp}}",
                },
            ],
        },
    ),
    HookTemplate(
        id="test-runner",
        name="Test Runner",
        description="Run tests when test files or source files change",
        category="build",
        config={
            "trigger": {"type": "file_change", "file_pattern": "{src,test}/**/*"},
            "actions": [{"id": "run-tests", "type": "npm", "command": "test"}],
        },
    ),
    HookTemplate(
        id="deploy-on-push",
        name="Deploy on Git Push",
        description="Deploy application when changes are pushed to main branch",
        category="deploy",
        config={
            "trigger": {"type": "git_event", "event": "push"},
            "conditions": [
                {"type": "command_success", "parameter": "git branch --show-current | grep -q main"},
            ],
            "actions": [
                {"id": "deploy", "type": "shell", "command": "npm run deploy"},
                {"id": "notify-deploy", "type": "notification", "message": "Application deployed successfully"},
            ],
        },
    ),
    HookTemplate(
        id="spec-rebuild",
        name="Rebuild From Spec",
        description="Regenerate code whenever the spec document changes",
        category="development",
        config={
            "trigger": {"type": "file_change", "file_pattern": ".hookflow/spec.yaml"},
            "actions": [
                {"id": "spec-build", "type": "spec_build", "spec_file": "{{filePath}}"},
                {"id": "notify-spec", "type": "notification", "message": "Spec rebuilt at {{timestamp}}"},
            ],
        },
    ),
)


def list_templates() -> list[HookTemplate]:
    return [deepcopy(template) for template in _BUILTIN_TEMPLATES]


def get_template(template_id: str) -> HookTemplate | None:
    for template in _BUILTIN_TEMPLATES:
        if template.id == template_id:
            return deepcopy(template)
    return None
