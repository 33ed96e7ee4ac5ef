import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import yaml

from hookflow import cli


class HooksCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.data_dir = self.root / "data"
        self.workdir = self.root / "work"
        self.workdir.mkdir()
        hooks_dir = self.data_dir / "hooks"
        hooks_dir.mkdir(parents=True)
        document = {
            "name": "Write marker",
            "description": "Writes a marker file",
            "trigger": {"type": "manual"},
            "actions": [{"id": "marker", "type": "file_create", "file": "marker.txt", "content": "{{who}}"}],
        }
        (hooks_dir / "marker.yaml").write_text(yaml.safe_dump(document), encoding="utf-8")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _run_cli(self, args: list[str]) -> str:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            cli.main(["--data-dir", str(self.data_dir), "--workdir", str(self.workdir), *args])
        return buffer.getvalue()

    def test_list_and_show(self) -> None:
        output = self._run_cli(["hooks", "list"])
        self.assertIn("marker｜Write marker｜manual", output)

        payload = json.loads(self._run_cli(["hooks", "list", "--json"]))
        self.assertEqual(payload[0]["id"], "marker")

        shown = self._run_cli(["hooks", "show", "marker"])
        self.assertIn("Hook ID：marker", shown)
        self.assertIn("file_create", shown)

    def test_run_with_variables(self) -> None:
        output = self._run_cli(["hooks", "run", "marker", "--var", "who=cli"])
        self.assertIn("執行成功", output)
        self.assertEqual((self.workdir / "marker.txt").read_text(encoding="utf-8"), "cli")

    def test_disable_then_run_fails_with_exit_code(self) -> None:
        self.assertIn("已停用", self._run_cli(["hooks", "disable", "marker"]))
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as ctx:
            self._run_cli(["hooks", "run", "marker"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("發生錯誤", stderr.getvalue())

    def test_create_from_template_and_delete(self) -> None:
        output = self._run_cli(["hooks", "create", "--template", "test-runner", "--name", "Tests"])
        hook_id = output.split("：", 1)[1].splitlines()[0].strip()
        self.assertTrue((self.data_dir / "hooks" / f"{hook_id}.yaml").exists())

        self.assertIn(hook_id, self._run_cli(["hooks", "list", "--search", "tests"]))
        self._run_cli(["hooks", "delete", hook_id])
        self.assertFalse((self.data_dir / "hooks" / f"{hook_id}.yaml").exists())

    def test_validate_reports_errors(self) -> None:
        bad = self.root / "bad.yaml"
        bad.write_text(yaml.safe_dump({"name": "x", "trigger": {"type": "file_change"}}), encoding="utf-8")
        buffer = io.StringIO()
        with redirect_stdout(buffer), self.assertRaises(SystemExit) as ctx:
            cli.main(["--data-dir", str(self.data_dir), "hooks", "validate", str(bad)])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("file_pattern", buffer.getvalue())

    def test_stats_and_templates(self) -> None:
        stats = self._run_cli(["hooks", "stats"])
        self.assertIn("總數：1", stats)
        self.assertIn("成功率：0%", stats)
        self.assertIn("git-auto-commit", self._run_cli(["hooks", "templates"]))

    def test_config_set_get_and_show(self) -> None:
        self.assertIn("已更新設定", self._run_cli(["config", "set", "hookflow.default_timeout_ms", "5000"]))
        self.assertEqual(self._run_cli(["config", "get", "hookflow.default_timeout_ms"]).strip(), "5000")
        shown = yaml.safe_load(self._run_cli(["config", "show"]))
        self.assertEqual(shown["hookflow"]["default_timeout_ms"], 5000)

        payload = json.loads(self._run_cli(["hooks", "list", "--json"]))
        self.assertEqual(payload[0]["timeout"], 5000)

    def test_fire_without_matches(self) -> None:
        self.assertIn("沒有符合的 hook", self._run_cli(["hooks", "fire", "git_event", "--event", "push"]))


if __name__ == "__main__":
    unittest.main()
