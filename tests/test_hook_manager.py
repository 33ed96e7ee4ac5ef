import json
import sys
import tempfile
import time
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import yaml

from hookflow.config import HookflowSettings
from hookflow.hooks.errors import HookDisabled, HookNotFound
from hookflow.hooks.manager import HookManager
from hookflow.hooks.types import TriggerEvent
from hookflow.process import CommandResult


class FakeRunner:
    def __init__(self) -> None:
        self.calls: list[object] = []

    def __call__(self, command, *, cwd=None, env=None, timeout_ms=None) -> CommandResult:
        self.calls.append(command)
        return CommandResult(exit_code=0, stdout="", stderr="")


class FakeCompletion:
    def complete(self, messages):
        return "done"


class HookManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        root = Path(self.temp_dir.name)
        self.data_dir = root / "data"
        self.workdir = root / "work"
        self.workdir.mkdir()
        self.settings = HookflowSettings(
            data_dir=self.data_dir,
            hooks_dir=self.data_dir / "hooks",
            watch_interval_seconds=0.05,
            debounce_seconds=0.0,
            max_workers=2,
        )
        self.runner = FakeRunner()
        self.notifications: list[tuple[str, str, str]] = []
        self.manager = HookManager(
            self.settings,
            command_runner=self.runner,
            completion_service=FakeCompletion(),
            notifier=lambda title, message, level: self.notifications.append((title, message, level)),
            working_directory=self.workdir,
        )

    def tearDown(self) -> None:
        self.manager.close()
        self.temp_dir.cleanup()

    def _write_hook(self, hook_id: str, payload: dict) -> None:
        hooks_dir = self.settings.hooks_dir
        hooks_dir.mkdir(parents=True, exist_ok=True)
        document = {"name": hook_id, "description": f"{hook_id} hook", **payload}
        (hooks_dir / f"{hook_id}.yaml").write_text(yaml.safe_dump(document), encoding="utf-8")

    def _wait_for(self, predicate, timeout: float = 3.0) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.05)
        return False

    def test_manual_execution_updates_history_stats_and_audit_log(self) -> None:
        self._write_hook(
            "notify",
            {"trigger": {"type": "manual"}, "actions": [{"id": "n", "type": "notification", "message": "hi {{who}}"}]},
        )
        self.assertEqual(self.manager.initialize(), [])

        result = self.manager.execute("notify", variables={"who": "team"})

        self.assertTrue(result.success)
        self.assertEqual(self.notifications, [("Notification", "hi team", "info")])
        self.assertEqual([item.hook_id for item in self.manager.history()], ["notify"])
        stats = self.manager.stats()
        self.assertEqual(stats.total, 1)
        self.assertEqual(stats.total_executions, 1)
        self.assertEqual(stats.success_rate, 1.0)

        events_path = self.data_dir / "logs" / "events.log"
        events = [json.loads(line) for line in events_path.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(events[-1]["event"], "hook_executed")
        self.assertEqual(events[-1]["hook_id"], "notify")

        self.manager.clear_history()
        self.assertEqual(self.manager.history(), [])
        self.assertEqual(self.manager.stats().success_rate, 0.0)

    def test_get_and_execute_errors(self) -> None:
        self._write_hook(
            "off",
            {"enabled": False, "trigger": {"type": "manual"}, "actions": [{"id": "a", "type": "shell", "command": "x"}]},
        )
        self.manager.initialize()
        with self.assertRaises(HookNotFound):
            self.manager.get_hook("missing")
        with self.assertRaises(HookDisabled):
            self.manager.execute("off")

    def test_fire_runs_matching_enabled_hooks(self) -> None:
        self._write_hook(
            "on-push",
            {"trigger": {"type": "git_event", "event": "push"}, "actions": [{"id": "a", "type": "shell", "command": "echo {{event}}"}]},
        )
        self._write_hook(
            "on-commit",
            {"trigger": {"type": "git_event", "event": "commit"}, "actions": [{"id": "a", "type": "shell", "command": "echo commit"}]},
        )
        self._write_hook(
            "on-start",
            {"trigger": {"type": "startup"}, "actions": [{"id": "a", "type": "shell", "command": "echo start"}]},
        )
        self.manager.initialize()

        results = self.manager.fire("git_event", event="push")

        self.assertEqual([result.hook_id for result in results], ["on-push"])
        self.assertEqual(results[0].trigger_type, "git_event")
        self.assertEqual(self.runner.calls, ["echo push"])

    def test_file_change_runs_hook_in_background(self) -> None:
        (self.workdir / "src").mkdir()
        hook = self.manager.create_hook(
            overrides={
                "name": "On change",
                "trigger": {"type": "file_change", "file_pattern": "src/*.txt"},
                "actions": [{"id": "log", "type": "file_create", "file": "out.log", "content": "{{changeType}}"}],
            }
        )
        self.assertTrue(self.manager.watcher.is_watching(hook.id))

        (self.workdir / "src" / "a.txt").write_text("x", encoding="utf-8")

        out_file = self.workdir / "out.log"
        self.assertTrue(self._wait_for(out_file.exists))
        self.assertTrue(self._wait_for(lambda: len(self.manager.history()) >= 1))
        self.assertEqual(out_file.read_text(encoding="utf-8"), "created")
        self.assertEqual(self.manager.history()[0].trigger_type, "file_change")

    def test_delete_and_disable_stop_watches(self) -> None:
        hook = self.manager.create_hook(
            overrides={
                "trigger": {"type": "file_change", "file_pattern": "*.md"},
                "actions": [{"id": "a", "type": "shell", "command": "true"}],
            }
        )
        self.manager.toggle_hook(hook.id, False)
        self.assertFalse(self.manager.watcher.is_watching(hook.id))
        self.manager.toggle_hook(hook.id, True)
        self.assertTrue(self.manager.watcher.is_watching(hook.id))
        self.manager.delete_hook(hook.id)
        self.assertFalse(self.manager.watcher.is_watching(hook.id))
        self.assertEqual(self.manager.list_hooks(), [])

    def test_validate_accepts_camel_case_documents(self) -> None:
        result = self.manager.validate(
            {
                "name": "x",
                "description": "y",
                "trigger": {"type": "file_change", "filePattern": "*.py"},
                "actions": [{"type": "shell", "command": "true"}],
            }
        )
        self.assertTrue(result.valid)
        self.assertEqual(len(result.warnings), 1)

    def test_templates_are_listed(self) -> None:
        ids = [template.id for template in self.manager.templates()]
        self.assertIn("git-auto-commit", ids)
        self.assertIn("deploy-on-push", ids)

    def test_submit_after_close_is_ignored(self) -> None:
        self.manager.close()
        self.assertIsNone(self.manager.submit("anything", TriggerEvent(type="file_change")))
        self.manager.close()


if __name__ == "__main__":
    unittest.main()
