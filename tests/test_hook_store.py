import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import yaml

from hookflow.hooks.errors import HookNotFound, HookValidationError, TemplateNotFound
from hookflow.hooks.store import HookStore


class RecordingWatcher:
    def __init__(self) -> None:
        self.watching: dict[str, str] = {}
        self.stopped: list[str] = []

    def sync(self, hook) -> bool:
        if hook.watches_files:
            self.watching[hook.id] = hook.trigger.file_pattern
            return True
        self.stop(hook.id)
        return False

    def stop(self, hook_id: str) -> bool:
        self.stopped.append(hook_id)
        return self.watching.pop(hook_id, None) is not None


def _write(path: Path, payload: dict) -> None:
    path.write_text(yaml.safe_dump(payload, allow_unicode=True), encoding="utf-8")


VALID_HOOK = {
    "name": "Format on save",
    "description": "Runs the formatter",
    "trigger": {"type": "manual"},
    "actions": [{"id": "fmt", "type": "shell", "command": "make fmt"}],
}


class HookStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.hooks_dir = Path(self.temp_dir.name) / "hooks"
        self.hooks_dir.mkdir()
        self.watcher = RecordingWatcher()
        self.events: list[dict] = []
        self.store = HookStore(self.hooks_dir, watcher=self.watcher, audit=self.events.append)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_load_applies_defaults_and_aliases(self) -> None:
        _write(
            self.hooks_dir / "fmt.yaml",
            {**VALID_HOOK, "onError": "continue", "actions": [{"type": "shell", "command": "x", "continueOnError": True}]},
        )
        problems = self.store.load()
        self.assertEqual(problems, [])
        hook = self.store.get("fmt")
        self.assertIsNotNone(hook)
        self.assertTrue(hook.enabled)
        self.assertEqual(hook.timeout, 30000)
        self.assertEqual(hook.retries, 0)
        self.assertEqual(hook.on_error, "continue")
        self.assertTrue(hook.actions[0].continue_on_error)

    def test_load_skips_invalid_and_reserved_files(self) -> None:
        _write(self.hooks_dir / "good.yaml", VALID_HOOK)
        _write(self.hooks_dir / "bad.yaml", {"name": "No actions", "description": "x", "trigger": {"type": "manual"}})
        (self.hooks_dir / "broken.yml").write_text("name: [unclosed", encoding="utf-8")
        _write(self.hooks_dir / "config.yaml", VALID_HOOK)
        (self.hooks_dir / "notes.txt").write_text("ignored", encoding="utf-8")

        problems = self.store.load()

        self.assertEqual([hook.id for hook in self.store.all()], ["good"])
        self.assertEqual(len(problems), 2)
        self.assertTrue(any(problem.startswith("bad.yaml") for problem in problems))

    def test_configured_default_timeout_and_duplicate_ids(self) -> None:
        _write(self.hooks_dir / "a.yaml", {**VALID_HOOK, "id": "shared"})
        _write(self.hooks_dir / "b.yaml", {**VALID_HOOK, "id": "shared", "name": "Second"})
        store = HookStore(self.hooks_dir, default_timeout_ms=1500)

        problems = store.load()

        self.assertEqual(len(problems), 1)
        self.assertIn("shared", problems[0])
        hook = store.require("shared")
        self.assertEqual(hook.name, "Second")
        self.assertEqual(hook.timeout, 1500)
        self.assertEqual(store.path_for("shared"), self.hooks_dir / "b.yaml")

    def test_load_starts_watches_for_file_change_hooks(self) -> None:
        _write(
            self.hooks_dir / "watch.yaml",
            {**VALID_HOOK, "trigger": {"type": "file_change", "filePattern": "src/**/*.py"}},
        )
        self.store.load()
        self.assertEqual(self.watcher.watching, {"watch": "src/**/*.py"})

    def test_list_filters_and_sorts_by_name(self) -> None:
        _write(self.hooks_dir / "b.yaml", {**VALID_HOOK, "name": "beta", "category": "build", "tags": ["ci"]})
        _write(self.hooks_dir / "a.yaml", {**VALID_HOOK, "name": "Alpha", "category": "git", "enabled": False})
        _write(self.hooks_dir / "c.yaml", {**VALID_HOOK, "name": "gamma", "description": "Deploy things"})
        self.store.load()

        self.assertEqual([hook.id for hook in self.store.list()], ["a", "b", "c"])
        self.assertEqual([hook.id for hook in self.store.list(category="build")], ["b"])
        self.assertEqual([hook.id for hook in self.store.list(enabled=False)], ["a"])
        self.assertEqual([hook.id for hook in self.store.list(tags=["ci", "other"])], ["b"])
        self.assertEqual([hook.id for hook in self.store.list(search="deploy")], ["c"])
        self.assertEqual([hook.id for hook in self.store.list(search="CI")], ["b"])

    def test_create_blank_hook(self) -> None:
        hook = self.store.create()
        self.assertTrue(hook.id.startswith("hook-"))
        self.assertEqual(hook.name, "New Hook")
        self.assertEqual(hook.trigger.type, "manual")
        self.assertEqual(hook.actions, ())
        self.assertIsNotNone(hook.created)
        self.assertEqual(hook.created, hook.modified)
        self.assertTrue((self.hooks_dir / f"{hook.id}.yaml").exists())
        self.assertEqual(self.events[-1]["event"], "hook_created")

    def test_create_from_template_with_overrides_gets_fresh_ids(self) -> None:
        first = self.store.create("git-auto-commit", {"name": "Mine", "id": "ignored"})
        second = self.store.create("git-auto-commit")
        self.assertNotEqual(first.id, second.id)
        self.assertNotEqual(first.id, "ignored")
        self.assertEqual(first.name, "Mine")
        self.assertEqual(first.category, "git")
        self.assertEqual([action.id for action in first.actions], ["git-add", "git-commit"])
        self.assertEqual(self.watcher.watching[first.id], "src/**/*")

    def test_create_from_template_is_found_by_its_category(self) -> None:
        _write(self.hooks_dir / "other.yaml", {**VALID_HOOK, "category": "build"})
        self.store.load()
        created = self.store.create("deploy-on-push")
        self.assertEqual(self.store.list(category="deploy"), [created])

    def test_create_rejects_invalid_overrides_without_writing(self) -> None:
        for overrides in (
            {"retries": -3, "on_error": "bogus"},
            {"timeout": "abc"},
            {"trigger": {"type": "file_change"}, "actions": [{"id": "a", "type": "shell", "command": "x"}]},
            {"name": ""},
        ):
            with self.subTest(overrides=overrides):
                with self.assertRaises(HookValidationError) as ctx:
                    self.store.create(overrides=overrides)
                self.assertTrue(ctx.exception.errors)
        self.assertEqual(list(self.hooks_dir.iterdir()), [])
        self.assertEqual(self.store.all(), [])
        self.assertEqual(self.watcher.watching, {})

    def test_create_blank_hook_with_valid_overrides(self) -> None:
        hook = self.store.create(overrides={"retries": 2, "on_error": "retry", "timeout": 500})
        self.assertEqual((hook.retries, hook.on_error, hook.timeout), (2, "retry", 500))

    def test_create_unknown_template_raises(self) -> None:
        with self.assertRaises(TemplateNotFound):
            self.store.create("does-not-exist")
        self.assertEqual(list(self.hooks_dir.iterdir()), [])

    def test_saved_hooks_reload_identically(self) -> None:
        created = self.store.create("deploy-on-push")
        reloaded = HookStore(self.hooks_dir)
        reloaded.load()
        self.assertEqual(reloaded.get(created.id), created)

    def test_toggle_persists_and_syncs_watch(self) -> None:
        _write(self.hooks_dir / "watch.yaml", {**VALID_HOOK, "trigger": {"type": "file_change", "file_pattern": "*.md"}})
        self.store.load()

        disabled = self.store.toggle("watch")
        self.assertFalse(disabled.enabled)
        self.assertNotIn("watch", self.watcher.watching)
        on_disk = yaml.safe_load((self.hooks_dir / "watch.yaml").read_text(encoding="utf-8"))
        self.assertFalse(on_disk["enabled"])

        enabled = self.store.toggle("watch", True)
        self.assertTrue(enabled.enabled)
        self.assertIn("watch", self.watcher.watching)
        self.assertEqual(self.events[-1], {"event": "hook_toggled", "hook_id": "watch", "enabled": True})

    def test_toggle_missing_hook_raises(self) -> None:
        with self.assertRaises(HookNotFound):
            self.store.toggle("missing")

    def test_update_merges_and_validates(self) -> None:
        _write(self.hooks_dir / "fmt.yaml", VALID_HOOK)
        self.store.load()

        updated = self.store.update("fmt", {"name": "Renamed", "id": "other", "onError": "continue"})
        self.assertEqual(updated.id, "fmt")
        self.assertEqual(updated.name, "Renamed")
        self.assertEqual(updated.on_error, "continue")
        self.assertIsNotNone(updated.modified)

        with self.assertRaises(HookValidationError):
            self.store.update("fmt", {"actions": []})
        self.assertEqual(self.store.get("fmt").name, "Renamed")

    def test_update_to_file_change_starts_watch(self) -> None:
        _write(self.hooks_dir / "fmt.yaml", VALID_HOOK)
        self.store.load()
        self.store.update("fmt", {"trigger": {"type": "file_change", "file_pattern": "docs/*.md"}})
        self.assertEqual(self.watcher.watching["fmt"], "docs/*.md")

    def test_delete_removes_file_watch_and_entry(self) -> None:
        _write(self.hooks_dir / "watch.yml", {**VALID_HOOK, "trigger": {"type": "file_change", "file_pattern": "*.md"}})
        self.store.load()

        self.store.delete("watch")

        self.assertIsNone(self.store.get("watch"))
        self.assertFalse((self.hooks_dir / "watch.yml").exists())
        self.assertNotIn("watch", self.watcher.watching)
        with self.assertRaises(HookNotFound):
            self.store.delete("watch")

    def test_delete_tolerates_missing_document(self) -> None:
        _write(self.hooks_dir / "fmt.yaml", VALID_HOOK)
        self.store.load()
        (self.hooks_dir / "fmt.yaml").unlink()
        self.store.delete("fmt")
        self.assertEqual(self.store.all(), [])

    def test_yml_documents_are_saved_in_place(self) -> None:
        _write(self.hooks_dir / "legacy.yml", VALID_HOOK)
        self.store.load()
        self.store.toggle("legacy")
        self.assertFalse((self.hooks_dir / "legacy.yaml").exists())
        on_disk = yaml.safe_load((self.hooks_dir / "legacy.yml").read_text(encoding="utf-8"))
        self.assertFalse(on_disk["enabled"])


if __name__ == "__main__":
    unittest.main()
