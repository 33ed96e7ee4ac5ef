"""Spec file parsing and code generation used by ``spec_build`` actions."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .fs import atomic_write_text
from .providers import CompletionService, ProviderError


class GenerationError(RuntimeError):
    pass


@dataclass(frozen=True)
class SpecData:
    goal: str
    language: str
    features: list[str]
    framework: str | None = None
    output_path: str | None = None


@dataclass(frozen=True)
class BuildResult:
    files: list[Path] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def file_count(self) -> int:
        return len(self.files)


_EXTENSIONS = {
    "typescript": ".ts",
    "javascript": ".js",
    "python": ".py",
    "java": ".java",
    "go": ".go",
    "rust": ".rs",
}

_FENCE_RE = re.compile(r"^```[\w+-]*\n(.*?)\n```\s*$", re.DOTALL)


def parse_spec(path: Path) -> SpecData:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as exc:
        raise GenerationError(f"找不到 spec 檔案：{path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise GenerationError(f"讀取 spec 失敗：{path}") from exc
    if not isinstance(payload, dict):
        raise GenerationError("spec YAML 必須為物件")
    goal = payload.get("goal")
    language = payload.get("language")
    features = payload.get("features")
    if not goal or not language or not features:
        raise GenerationError("spec 缺少必要欄位：goal, language, features")
    if not isinstance(features, list):
        features = [features]
    return SpecData(
        goal=str(goal),
        language=str(language),
        features=[str(item) for item in features],
        framework=str(payload["framework"]) if payload.get("framework") else None,
        output_path=payload.get("outputPath") or payload.get("output_path"),
    )


def file_extension(language: str, framework: str | None = None) -> str:
    lang = language.lower()
    if framework and "react" in framework.lower() and lang in {"typescript", "javascript"}:
        return ".tsx" if lang == "typescript" else ".jsx"
    return _EXTENSIONS.get(lang, ".txt")


def file_name_for(goal: str, extension: str) -> str:
    base = re.sub(r"[^a-z0-9\s]", "", goal.lower())
    base = re.sub(r"\s+", "-", base).strip("-") or "generated"
    return f"{base}{extension}"


class SpecBuilder:
    """Turn a spec document into a generated source file via an AI completion service."""

    def __init__(self, completion_service: CompletionService | None, *, output_dir: str = "generated") -> None:
        self.completion_service = completion_service
        self.output_dir = output_dir

    def build(self, spec_path: str | Path, *, base_dir: Path | None = None) -> BuildResult:
        start = time.monotonic()
        path = Path(spec_path)
        if base_dir and not path.is_absolute():
            path = base_dir / path
        spec = parse_spec(path)
        if self.completion_service is None:
            raise GenerationError("未設定 AI 服務，無法產生程式碼")
        try:
            code = self.completion_service.complete(_build_messages(spec))
        except ProviderError as exc:
            raise GenerationError(f"程式碼產生失敗：{exc}") from exc
        output_dir = Path(spec.output_path or self.output_dir)
        if base_dir and not output_dir.is_absolute():
            output_dir = base_dir / output_dir
        target = output_dir / file_name_for(spec.goal, file_extension(spec.language, spec.framework))
        try:
            atomic_write_text(target, _strip_fence(code))
        except OSError as exc:
            raise GenerationError(f"寫入產生檔案失敗：{target}") from exc
        return BuildResult(files=[target], duration_ms=int((time.monotonic() - start) * 1000))


def _build_messages(spec: SpecData) -> list[dict[str, Any]]:
    features = "\n".join(f"- {item}" for item in spec.features)
    framework = f" using {spec.framework}" if spec.framework else ""
    return [
        {
            "role": "system",
            "content": "You are a code generator. Reply with a single source file and nothing else.",
        },
        {
            "role": "user",
            "content": f"Goal: {spec.goal}\nLanguage: {spec.language}{framework}\nFeatures:\n{features}",
        },
    ]


def _strip_fence(text: str) -> str:
    match = _FENCE_RE.match(text.strip())
    content = match.group(1) if match else text
    return content if content.endswith("\n") else f"{content}\n"
