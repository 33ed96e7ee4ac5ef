"""Hook document loader and validator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..scheduler import parse_cron_expression
from .types import (
    ACTION_TYPES,
    CONDITION_TYPES,
    DEFAULT_TIMEOUT_MS,
    ON_ERROR_POLICIES,
    TRIGGER_TYPES,
    Hook,
    HookAction,
    HookCondition,
    HookTrigger,
    ValidationResult,
)


logger = logging.getLogger(__name__)

HOOK_SUFFIXES = (".yaml", ".yml")
RESERVED_NAMES = frozenset({"config.yaml", "config.yml"})

# camelCase spellings accepted on load
_KEY_ALIASES = {
    "onError": "on_error",
    "continueOnError": "continue_on_error",
    "stopOnRetryExhausted": "stop_on_retry_exhausted",
    "filePattern": "file_pattern",
    "specFile": "spec_file",
    "outputFile": "output_file",
}

_ACTION_RESERVED_KEYS = frozenset({"id", "type", "timeout", "continue_on_error"})
MISSING_ACTIONS_ERROR = "缺少必要欄位：actions（必須為非空陣列）"


def normalize_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        target = _KEY_ALIASES.get(str(key), str(key))
        if target in normalized and target != key:
            continue
        normalized[target] = value
    return normalized


def normalize_document(payload: Mapping[str, Any]) -> dict[str, Any]:
    document = normalize_keys(payload)
    trigger = document.get("trigger")
    if isinstance(trigger, Mapping):
        document["trigger"] = normalize_keys(trigger)
    actions = document.get("actions")
    if isinstance(actions, list):
        document["actions"] = [normalize_keys(item) if isinstance(item, Mapping) else item for item in actions]
    return document


def validate_hook(payload: Any) -> ValidationResult:
    """Check a (normalized) hook document; only errors block loading."""
    errors: list[str] = []
    warnings: list[str] = []
    if not isinstance(payload, Mapping):
        return ValidationResult(errors=["hook 文件必須為物件"])

    if not payload.get("name"):
        errors.append("缺少必要欄位：name")
    if not payload.get("description"):
        errors.append("缺少必要欄位：description")

    trigger = payload.get("trigger")
    if not trigger:
        errors.append("缺少必要欄位：trigger")
    elif not isinstance(trigger, Mapping):
        errors.append("trigger 必須為物件")
    else:
        _validate_trigger(trigger, errors, warnings)

    actions = payload.get("actions")
    if not isinstance(actions, list) or not actions:
        errors.append(MISSING_ACTIONS_ERROR)
    else:
        seen_ids: set[str] = set()
        for index, action in enumerate(actions, start=1):
            if not isinstance(action, Mapping):
                errors.append(f"Action {index} 必須為物件")
                continue
            action_type = action.get("type")
            if not action_type:
                errors.append(f"Action {index} 缺少必要欄位：type")
            elif action_type not in ACTION_TYPES:
                warnings.append(f"Action {index} 使用未知類型：{action_type}")
            action_id = action.get("id")
            if not action_id:
                warnings.append(f"Action {index} 缺少建議欄位：id")
            elif str(action_id) in seen_ids:
                warnings.append(f"Action {index} 的 id 重複：{action_id}")
            else:
                seen_ids.add(str(action_id))

    conditions = payload.get("conditions")
    if conditions is not None and not isinstance(conditions, list):
        errors.append("conditions 必須為陣列")
    elif conditions:
        for index, condition in enumerate(conditions, start=1):
            if not isinstance(condition, Mapping) or not condition.get("type"):
                errors.append(f"Condition {index} 缺少必要欄位：type")
            elif condition.get("type") not in CONDITION_TYPES:
                warnings.append(f"Condition {index} 使用未知類型：{condition.get('type')}")

    on_error = payload.get("on_error")
    if on_error is not None and on_error not in ON_ERROR_POLICIES:
        errors.append(f"on_error 必須為 continue/stop/retry（收到：{on_error}）")

    retries = payload.get("retries")
    if retries is not None and (not _is_int(retries) or int(retries) < 0):
        errors.append("retries 必須為非負整數")

    timeout = payload.get("timeout")
    if timeout is not None and (not _is_int(timeout) or int(timeout) <= 0):
        errors.append("timeout 必須為正整數（毫秒）")

    return ValidationResult(errors=errors, warnings=warnings)


def _validate_trigger(trigger: Mapping[str, Any], errors: list[str], warnings: list[str]) -> None:
    trigger_type = trigger.get("type")
    if not trigger_type:
        errors.append("trigger 缺少必要欄位：type")
        return
    if trigger_type not in TRIGGER_TYPES:
        warnings.append(f"未知的 trigger 類型：{trigger_type}")
    if trigger_type == "file_change" and not trigger.get("file_pattern"):
        errors.append("file_change trigger 必須提供 file_pattern")
    if trigger_type == "schedule":
        expression = trigger.get("schedule")
        if not expression:
            warnings.append("schedule trigger 缺少 cron 表達式")
        else:
            try:
                parse_cron_expression(str(expression))
            except ValueError as exc:
                warnings.append(f"cron 表達式無效：{exc}")


def hook_from_document(
    payload: Mapping[str, Any],
    default_id: str | None = None,
    *,
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> Hook:
    """Build a :class:`Hook` from a validated document, applying defaults."""
    document = normalize_document(payload)
    hook_id = str(document.get("id") or default_id or "").strip()
    if not hook_id:
        raise ValueError("hook 缺少 id")

    trigger_payload = document.get("trigger") or {}
    trigger = HookTrigger(
        type=str(trigger_payload.get("type") or "manual"),
        file_pattern=_optional_str(trigger_payload.get("file_pattern")),
        schedule=_optional_str(trigger_payload.get("schedule")),
        event=_optional_str(trigger_payload.get("event")),
        command=_optional_str(trigger_payload.get("command")),
    )

    actions = tuple(action_from_document(item) for item in document.get("actions") or [])
    conditions = tuple(
        HookCondition(
            type=str(item.get("type")),
            parameter=str(item.get("parameter") or ""),
            value=item.get("value"),
            operator=_optional_str(item.get("operator")),
        )
        for item in document.get("conditions") or []
    )

    tags = document.get("tags") or []
    if not isinstance(tags, list):
        tags = [tags]
    variables = document.get("variables") or {}
    if not isinstance(variables, Mapping):
        raise ValueError("variables 必須為物件")

    return Hook(
        id=hook_id,
        name=str(document.get("name") or ""),
        description=str(document.get("description") or ""),
        trigger=trigger,
        actions=actions,
        conditions=conditions,
        variables=dict(variables),
        enabled=document.get("enabled") is not False,
        timeout=int(document.get("timeout") or default_timeout_ms),
        retries=int(document.get("retries") or 0),
        on_error=str(document.get("on_error") or "stop"),
        stop_on_retry_exhausted=bool(document.get("stop_on_retry_exhausted", False)),
        version=_optional_str(document.get("version")),
        author=_optional_str(document.get("author")),
        tags=tuple(str(tag) for tag in tags),
        category=_optional_str(document.get("category")),
        created=_optional_str(document.get("created")),
        modified=_optional_str(document.get("modified")),
    )


def action_from_document(payload: Mapping[str, Any]) -> HookAction:
    item = normalize_keys(payload)
    timeout = item.get("timeout")
    return HookAction(
        type=str(item.get("type") or ""),
        id=_optional_str(item.get("id")),
        params={key: value for key, value in item.items() if key not in _ACTION_RESERVED_KEYS},
        timeout=int(timeout) if _is_int(timeout) and int(timeout) > 0 else None,
        continue_on_error=bool(item.get("continue_on_error", False)),
    )


def is_hook_document(path: Path) -> bool:
    return path.is_file() and path.suffix in HOOK_SUFFIXES and path.name not in RESERVED_NAMES


def load_hook(path: Path, *, default_timeout_ms: int = DEFAULT_TIMEOUT_MS) -> tuple[Hook, list[str]]:
    """Read one hook document; returns the hook and its validation warnings."""
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"讀取 hook 失敗：{path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("hook YAML 必須為物件")
    document = normalize_document(payload)
    validation = validate_hook(document)
    if not validation.valid:
        raise ValueError("; ".join(validation.errors))
    return hook_from_document(document, default_id=path.stem, default_timeout_ms=default_timeout_ms), validation.warnings


def load_hooks(
    hooks_dir: Path, *, default_timeout_ms: int = DEFAULT_TIMEOUT_MS
) -> tuple[list[tuple[Path, Hook]], list[str]]:
    """Load every eligible document as ``(path, hook)``; invalid files are skipped and reported."""
    if not hooks_dir.exists():
        return [], []
    hooks: list[tuple[Path, Hook]] = []
    problems: list[str] = []
    for path in sorted(hooks_dir.iterdir()):
        if not is_hook_document(path):
            continue
        try:
            hook, warnings = load_hook(path, default_timeout_ms=default_timeout_ms)
        except (ValueError, TypeError) as exc:
            message = f"{path.name}：{exc}"
            logger.warning("略過無效的 hook 設定 %s", message)
            problems.append(message)
            continue
        for warning in warnings:
            logger.warning("Hook %s：%s", path.name, warning)
        hooks.append((path, hook))
    return hooks, problems


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        int(value)
    except (TypeError, ValueError):
        return False
    return True
