"""Command line interface for hookflow."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml

from .config import ConfigLoader, get_config_value
from .hooks.loader import normalize_document
from .hooks.manager import HookManager
from .hooks.types import ExecutionResult, Hook, TriggerEvent
from .logging_utils import setup_logger


def _print_hook(hook: Hook) -> None:
    print(f"Hook ID：{hook.id}")
    print(f"名稱：{hook.name}")
    print(f"說明：{hook.description}")
    print(f"狀態：{'啟用' if hook.enabled else '停用'}")
    print(f"分類：{hook.category or 'custom'}")
    print(f"觸發：{_describe_trigger(hook)}")
    print(f"Actions：{len(hook.actions)} 個")
    for index, action in enumerate(hook.actions, start=1):
        print(f"  {index}. {action.id or f'action-{index}'}（{action.type}）")
    if hook.tags:
        print(f"標籤：{', '.join(hook.tags)}")
    if hook.modified:
        print(f"更新時間：{hook.modified}")


def _describe_trigger(hook: Hook) -> str:
    trigger = hook.trigger
    detail = trigger.file_pattern or trigger.schedule or trigger.event or trigger.command
    return f"{trigger.type}（{detail}）" if detail else trigger.type


def _print_result(result: ExecutionResult) -> None:
    status = "成功" if result.success else "失敗"
    print(f"Hook {result.hook_id} 執行{status}（{result.duration_ms} ms）")
    if result.error:
        print(f"錯誤：{result.error}")
    for item in result.actions:
        mark = "✓" if item.success else "✗"
        print(f"  {mark} {item.action_id}（{item.action_type}，{item.duration_ms} ms）")
        if item.error:
            print(f"    {item.error}")


def _parse_pairs(values: list[str] | None) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise ValueError(f"參數格式錯誤（應為 key=value）：{raw}")
        pairs[key] = value
    return pairs


def _read_document(path_value: str) -> dict[str, Any]:
    path = Path(path_value).expanduser()
    payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        raise ValueError("hook YAML 必須為物件")
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hookflow", description="hookflow 自動化 hook 管理 CLI")
    parser.add_argument("--data-dir", default=None, help="指定 hookflow 資料夾位置（預設 ./.hookflow）")
    parser.add_argument("--workdir", default=None, help="執行 hook 時的工作目錄（預設為目前目錄）")

    subparsers = parser.add_subparsers(dest="command")

    hooks_parser = subparsers.add_parser("hooks", help="Hook 管理")
    hooks_sub = hooks_parser.add_subparsers(dest="hooks_command")

    hooks_list = hooks_sub.add_parser("list", help="列出 hooks")
    hooks_list.add_argument("--category", help="依分類篩選")
    state_group = hooks_list.add_mutually_exclusive_group()
    state_group.add_argument("--enabled", dest="enabled", action="store_const", const=True, help="只列出啟用中的 hook")
    state_group.add_argument("--disabled", dest="enabled", action="store_const", const=False, help="只列出停用的 hook")
    hooks_list.add_argument("--tag", action="append", default=[], help="依標籤篩選，可重複")
    hooks_list.add_argument("--search", help="搜尋名稱、說明與標籤")
    hooks_list.add_argument("--json", action="store_true", help="以 JSON 輸出")

    hooks_show = hooks_sub.add_parser("show", help="查看 hook")
    hooks_show.add_argument("hook_id", help="hook ID")

    hooks_create = hooks_sub.add_parser("create", help="建立 hook")
    hooks_create.add_argument("--template", help="範本 ID")
    hooks_create.add_argument("--file", help="以 YAML 檔內容作為設定")
    hooks_create.add_argument("--name", help="hook 名稱")
    hooks_create.add_argument("--description", help="hook 說明")

    hooks_run = hooks_sub.add_parser("run", help="手動執行 hook")
    hooks_run.add_argument("hook_id", help="hook ID")
    hooks_run.add_argument("--var", action="append", default=[], help="變數，格式 key=value，可重複")
    hooks_run.add_argument("--json", action="store_true", help="以 JSON 輸出")

    for name, help_text in (
        ("enable", "啟用 hook"),
        ("disable", "停用 hook"),
        ("toggle", "切換 hook 啟用狀態"),
        ("delete", "刪除 hook"),
    ):
        sub = hooks_sub.add_parser(name, help=help_text)
        sub.add_argument("hook_id", help="hook ID")

    hooks_sub.add_parser("stats", help="顯示統計")
    hooks_sub.add_parser("templates", help="列出內建範本")

    hooks_history = hooks_sub.add_parser("history", help="顯示本次程序的執行紀錄")
    hooks_history.add_argument("--limit", type=int, default=50, help="最多顯示筆數")

    hooks_validate = hooks_sub.add_parser("validate", help="驗證 hook YAML")
    hooks_validate.add_argument("file", help="hook YAML 路徑")

    hooks_fire = hooks_sub.add_parser("fire", help="送出觸發事件")
    hooks_fire.add_argument("trigger_type", help="觸發類型，例如 git_event、command、startup")
    hooks_fire.add_argument("--event", help="git 事件種類，例如 push")
    hooks_fire.add_argument("--name", dest="command_name", help="command 觸發的指令名稱")
    hooks_fire.add_argument("--data", action="append", default=[], help="事件資料，格式 key=value，可重複")

    config_parser = subparsers.add_parser("config", help="設定管理")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_get = config_sub.add_parser("get", help="讀取設定")
    config_get.add_argument("key", help="設定鍵（例如 hookflow.history_limit）")
    config_set = config_sub.add_parser("set", help="更新設定")
    config_set.add_argument("key", help="設定鍵（例如 provider.model）")
    config_set.add_argument("value", help="設定值（會以 YAML 解析）")
    config_sub.add_parser("show", help="顯示合併後設定")

    serve_parser = subparsers.add_parser("serve", help="啟動常駐服務（檔案監看與排程）")
    serve_parser.add_argument("--tick-interval", type=float, default=1.0, help="排程檢查間隔秒數")

    api_parser = subparsers.add_parser("api", help="啟動 HTTP API")
    api_parser.add_argument("--host", default="127.0.0.1", help="綁定位址")
    api_parser.add_argument("--port", type=int, default=8765, help="連接埠")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    loader = ConfigLoader(args.data_dir)
    logger = setup_logger("hookflow", loader.data_dir / "logs")

    try:
        if args.command == "hooks":
            if not args.hooks_command:
                print("請指定 hooks 子指令，例如：hookflow hooks list")
                return
            with HookManager.from_data_dir(loader.data_dir, working_directory=args.workdir, watch=False) as manager:
                manager.initialize()
                _handle_hooks(manager, args)
        elif args.command == "config":
            _handle_config(loader, args)
        elif args.command == "serve":
            from .daemon import run_daemon

            manager = HookManager.from_data_dir(loader.data_dir, working_directory=args.workdir)
            run_daemon(manager, tick_interval_seconds=args.tick_interval)
        elif args.command == "api":
            from .api import serve

            manager = HookManager.from_data_dir(loader.data_dir, working_directory=args.workdir)
            manager.initialize()
            serve(manager, host=args.host, port=args.port)
        else:
            parser.print_help()
    except Exception as exc:  # noqa: BLE001
        logger.error("執行失敗：%s", exc, exc_info=True)
        print(f"發生錯誤：{exc}（詳細資訊請查看 logs/hookflow.log）", file=sys.stderr)
        sys.exit(1)


def _handle_config(loader: ConfigLoader, args: argparse.Namespace) -> None:
    if args.config_command == "get":
        value = get_config_value(loader.resolve(), args.key)
        if isinstance(value, (dict, list)):
            print(yaml.safe_dump(value, allow_unicode=True, sort_keys=False), end="")
        else:
            print(value)
        return
    if args.config_command == "set":
        try:
            parsed_value = yaml.safe_load(args.value)
        except yaml.YAMLError as exc:
            raise ValueError("設定值格式錯誤") from exc
        loader.set_value(args.key, parsed_value)
        print("已更新設定")
        return
    if args.config_command == "show":
        print(yaml.safe_dump(loader.resolve(), allow_unicode=True, sort_keys=False), end="")
        return
    raise ValueError("請指定設定指令，例如：hookflow config show")


def _handle_hooks(manager: HookManager, args: argparse.Namespace) -> None:
    command = args.hooks_command
    if command == "list":
        hooks = manager.list_hooks(category=args.category, enabled=args.enabled, tags=args.tag, search=args.search)
        if args.json:
            print(json.dumps([hook.to_document() for hook in hooks], ensure_ascii=False, indent=2))
            return
        if not hooks:
            print("目前沒有任何 hook。")
            return
        for hook in hooks:
            state = "" if hook.enabled else "（已停用）"
            print(f"{hook.id}｜{hook.name}｜{_describe_trigger(hook)}{state}")
        return

    if command == "show":
        _print_hook(manager.get_hook(args.hook_id))
        return

    if command == "create":
        overrides: dict[str, Any] = normalize_document(_read_document(args.file)) if args.file else {}
        if args.name:
            overrides["name"] = args.name
        if args.description:
            overrides["description"] = args.description
        hook = manager.create_hook(args.template, overrides or None)
        print(f"已建立 hook：{hook.id}")
        if not hook.actions:
            print("提醒：此 hook 尚未設定任何 action，載入時會被視為無效。")
        return

    if command == "run":
        result = manager.execute(args.hook_id, trigger=TriggerEvent(type="manual"), variables=_parse_pairs(args.var))
        if args.json:
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        else:
            _print_result(result)
        if not result.success:
            sys.exit(1)
        return

    if command in {"enable", "disable", "toggle"}:
        target = None if command == "toggle" else command == "enable"
        hook = manager.toggle_hook(args.hook_id, target)
        print(f"已{'啟用' if hook.enabled else '停用'} hook：{hook.id}")
        return

    if command == "delete":
        manager.delete_hook(args.hook_id)
        print(f"已刪除 hook：{args.hook_id}")
        return

    if command == "stats":
        stats = manager.stats()
        print(f"總數：{stats.total}（啟用 {stats.enabled}，停用 {stats.disabled}）")
        for category, count in sorted(stats.by_category.items()):
            print(f"  {category}：{count}")
        print(f"執行次數：{stats.total_executions}")
        print(f"成功率：{stats.success_rate:.0%}")
        if stats.last_executed:
            print(f"最後執行：{stats.last_executed}")
        return

    if command == "templates":
        for template in manager.templates():
            print(f"{template.id}｜{template.name}｜{template.category}")
            print(f"  {template.description}")
        return

    if command == "history":
        results = manager.history(args.limit)
        if not results:
            print("目前沒有執行紀錄。")
            return
        for result in results:
            status = "成功" if result.success else "失敗"
            print(f"{result.timestamp}｜{result.hook_id}｜{result.trigger_type}｜{status}｜{result.duration_ms} ms")
        return

    if command == "validate":
        validation = manager.validate(_read_document(args.file))
        for error in validation.errors:
            print(f"錯誤：{error}")
        for warning in validation.warnings:
            print(f"警告：{warning}")
        if not validation.valid:
            sys.exit(1)
        print("hook 設定有效")
        return

    if command == "fire":
        results = manager.fire(
            args.trigger_type,
            _parse_pairs(args.data),
            event=args.event,
            command=args.command_name,
        )
        if not results:
            print("沒有符合的 hook。")
            return
        for result in results:
            _print_result(result)
        if not all(result.success for result in results):
            sys.exit(1)
        return

    raise ValueError(f"未知的 hooks 指令：{command}")
