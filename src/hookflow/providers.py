"""AI completion providers used by ``ai_generate`` actions."""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping, Protocol


class ProviderError(RuntimeError):
    pass


class CompletionService(Protocol):
    def complete(self, messages: list[dict[str, str]]) -> str: ...


@dataclass
class ProviderResponse:
    text: str
    usage: dict[str, Any] | None
    model: str
    raw: dict[str, Any] | None = None


class OpenAICompatibleProvider:
    def __init__(self, base_url: str, api_key_env: str, model: str, timeout_s: int = 60) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key_env = api_key_env
        self.model = model
        self.timeout_s = timeout_s

    def _get_api_key(self) -> str:
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(f"未設定 API Key（請設定環境變數 {self.api_key_env}）")
        return api_key

    def chat(self, messages: list[dict[str, str]]) -> ProviderResponse:
        payload = {"model": self.model, "messages": messages, "stream": False}
        request = urllib.request.Request(
            f"{self.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._get_api_key()}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:  # noqa: S310
                try:
                    data = json.loads(response.read().decode("utf-8"))
                except json.JSONDecodeError as exc:
                    raise ProviderError("解析模型回應失敗") from exc
        except urllib.error.HTTPError as exc:
            raise ProviderError(f"模型請求失敗：{exc}") from exc
        except urllib.error.URLError as exc:
            raise ProviderError(f"模型連線失敗：{exc}") from exc
        except TimeoutError as exc:
            raise ProviderError("模型請求逾時") from exc
        choices = data.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content") or ""
        return ProviderResponse(text=text, usage=data.get("usage"), model=self.model, raw=data)

    def complete(self, messages: list[dict[str, str]]) -> str:
        return self.chat(messages).text


def build_provider(config: Mapping[str, Any]) -> OpenAICompatibleProvider:
    """Build the configured provider; no network I/O happens until first use."""
    provider_cfg = config.get("provider") or {}
    provider_type = str(provider_cfg.get("type") or "openai_compatible")
    if provider_type != "openai_compatible":
        raise ProviderError(f"不支援的 provider 類型：{provider_type}")
    try:
        timeout_s = int(provider_cfg.get("timeout_s") or 60)
    except (TypeError, ValueError):
        timeout_s = 60
    return OpenAICompatibleProvider(
        base_url=str(provider_cfg.get("base_url") or "https://api.openai.com/v1"),
        api_key_env=str(provider_cfg.get("api_key_env") or "OPENAI_API_KEY"),
        model=str(provider_cfg.get("model") or "gpt-4o-mini"),
        timeout_s=timeout_s,
    )
