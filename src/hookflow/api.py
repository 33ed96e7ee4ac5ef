"""FastAPI application exposing the hook manager over HTTP."""

from __future__ import annotations

import logging
import sys
from typing import Any

from . import __version__
from .hooks.errors import HookDisabled, HookError, HookNotFound, HookValidationError, TemplateNotFound
from .hooks.manager import HookManager
from .hooks.types import Hook, TriggerEvent

logger = logging.getLogger(__name__)


def _hook_payload(hook: Hook) -> dict[str, Any]:
    return hook.to_document()


def _status_for(exc: HookError) -> int:
    if isinstance(exc, (HookNotFound, TemplateNotFound)):
        return 404
    if isinstance(exc, HookDisabled):
        return 409
    if isinstance(exc, HookValidationError):
        return 400
    return 500


def create_app(manager: HookManager):
    try:
        from fastapi import Body, FastAPI, HTTPException
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("請先安裝 API 依賴：pip install -e .") from exc

    app = FastAPI(title="hookflow", version=__version__)

    def fail(exc: HookError) -> HTTPException:
        detail: Any = str(exc)
        if isinstance(exc, HookValidationError) and exc.errors:
            detail = {"message": str(exc), "errors": exc.errors}
        return HTTPException(status_code=_status_for(exc), detail=detail)

    @app.get("/health")
    def health() -> dict[str, Any]:
        watching = manager.watcher.active_ids() if manager.watcher else []
        return {"status": "ok", "service": "hookflow", "version": __version__, "watching": watching}

    @app.get("/hooks")
    def list_hooks(
        category: str | None = None,
        enabled: bool | None = None,
        tag: str | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        hooks = manager.list_hooks(category=category, enabled=enabled, tags=[tag] if tag else None, search=search)
        return [_hook_payload(hook) for hook in hooks]

    @app.get("/hooks/{hook_id}")
    def show_hook(hook_id: str) -> dict[str, Any]:
        try:
            return _hook_payload(manager.get_hook(hook_id))
        except HookError as exc:
            raise fail(exc) from exc

    @app.post("/hooks", status_code=201)
    def create_hook(payload: dict[str, Any] | None = Body(default=None)) -> dict[str, Any]:
        body = dict(payload or {})
        template = body.pop("template", None)
        overrides = body.pop("overrides", None) or body
        try:
            return _hook_payload(manager.create_hook(template, overrides))
        except HookError as exc:
            raise fail(exc) from exc

    @app.put("/hooks/{hook_id}")
    def update_hook(hook_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            return _hook_payload(manager.update_hook(hook_id, payload))
        except HookError as exc:
            raise fail(exc) from exc

    @app.post("/hooks/{hook_id}/execute")
    def execute_hook(hook_id: str, payload: dict[str, Any] | None = Body(default=None)) -> dict[str, Any]:
        body = payload or {}
        try:
            result = manager.execute(
                hook_id,
                trigger=TriggerEvent(type="manual", data=dict(body.get("data") or {})),
                variables=body.get("variables"),
                working_directory=body.get("working_directory"),
                environment=body.get("environment"),
            )
        except HookError as exc:
            raise fail(exc) from exc
        return result.to_dict()

    @app.post("/hooks/{hook_id}/toggle")
    def toggle_hook(hook_id: str, payload: dict[str, Any] | None = Body(default=None)) -> dict[str, Any]:
        enabled = (payload or {}).get("enabled")
        if enabled is not None and not isinstance(enabled, bool):
            raise HTTPException(status_code=400, detail="enabled 必須為布林值")
        try:
            hook = manager.toggle_hook(hook_id, enabled)
        except HookError as exc:
            raise fail(exc) from exc
        return _hook_payload(hook)

    @app.delete("/hooks/{hook_id}")
    def delete_hook(hook_id: str) -> dict[str, Any]:
        try:
            manager.delete_hook(hook_id)
        except HookError as exc:
            raise fail(exc) from exc
        return {"deleted": hook_id}

    @app.post("/validate")
    def validate_hook(payload: dict[str, Any]) -> dict[str, Any]:
        result = manager.validate(payload)
        return {"valid": result.valid, "errors": result.errors, "warnings": result.warnings}

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        return manager.stats().to_dict()

    @app.get("/templates")
    def templates() -> list[dict[str, Any]]:
        return [template.to_dict() for template in manager.templates()]

    @app.get("/history")
    def history(limit: int = 50) -> list[dict[str, Any]]:
        return [result.to_dict() for result in manager.history(limit)]

    return app


def serve(manager: HookManager, *, host: str = "127.0.0.1", port: int = 8765) -> None:
    """Serve the API with uvicorn; file watches stay active while serving."""
    try:
        import uvicorn

        app = create_app(manager)
        uvicorn.run(app, host=host, port=port)
    except Exception as exc:  # noqa: BLE001
        logger.exception("API 啟動失敗")
        print(f"API 啟動失敗：{exc}", file=sys.stderr)
        raise
    finally:
        manager.close()
