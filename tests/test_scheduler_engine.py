import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from hookflow.hooks.types import Hook, HookAction, HookTrigger
from hookflow.scheduler import ScheduleTracker, next_cron_after, parse_cron_expression


def _scheduled(hook_id: str, expression: str, *, enabled: bool = True) -> Hook:
    return Hook(
        id=hook_id,
        name=hook_id,
        description="scheduled",
        trigger=HookTrigger(type="schedule", schedule=expression),
        actions=(HookAction(type="shell", params={"command": "true"}),),
        enabled=enabled,
    )


class CronTests(unittest.TestCase):
    def test_parse_fields(self) -> None:
        minute, hour, dom, month, dow = parse_cron_expression("*/15 9-17 1,15 * 7")
        self.assertEqual(minute, {0, 15, 30, 45})
        self.assertEqual(hour, set(range(9, 18)))
        self.assertEqual(dom, {1, 15})
        self.assertEqual(month, set(range(1, 13)))
        self.assertEqual(dow, {0})

    def test_invalid_expressions(self) -> None:
        for expression in ("* * * *", "61 * * * *", "*/0 * * * *", "a * * * *", "5-1 * * * *"):
            with self.subTest(expression=expression):
                with self.assertRaises(ValueError):
                    parse_cron_expression(expression)

    def test_next_cron_after(self) -> None:
        base = datetime(2024, 1, 1, 10, 7, 30, tzinfo=timezone.utc)
        self.assertEqual(next_cron_after("*/15 * * * *", base), datetime(2024, 1, 1, 10, 15, tzinfo=timezone.utc))
        # 2024-01-01 is a Monday; next Sunday 00:00 is the 7th
        self.assertEqual(next_cron_after("0 0 * * 0", base), datetime(2024, 1, 7, 0, 0, tzinfo=timezone.utc))


class ScheduleTrackerTests(unittest.TestCase):
    def test_first_tick_arms_then_fires_once_per_slot(self) -> None:
        tracker = ScheduleTracker()
        hook = _scheduled("every-minute", "* * * * *")
        start = datetime(2024, 1, 1, 0, 0, 10, tzinfo=timezone.utc)

        self.assertEqual(tracker.tick([hook], start), [])
        self.assertEqual(tracker.next_fire_at("every-minute"), datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc))

        due = tracker.tick([hook], start + timedelta(minutes=1))
        self.assertEqual([item.id for item in due], ["every-minute"])
        self.assertEqual(tracker.tick([hook], start + timedelta(minutes=1, seconds=5)), [])

    def test_disabled_and_removed_hooks_are_dropped(self) -> None:
        tracker = ScheduleTracker()
        start = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        tracker.tick([_scheduled("a", "* * * * *")], start)

        due = tracker.tick([_scheduled("a", "* * * * *", enabled=False)], start + timedelta(minutes=5))

        self.assertEqual(due, [])
        self.assertIsNone(tracker.next_fire_at("a"))

    def test_changed_expression_rearms(self) -> None:
        tracker = ScheduleTracker()
        start = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        tracker.tick([_scheduled("a", "* * * * *")], start)
        due = tracker.tick([_scheduled("a", "0 * * * *")], start + timedelta(minutes=5))
        self.assertEqual(due, [])
        expected = next_cron_after("0 * * * *", (start + timedelta(minutes=5)).astimezone())
        self.assertEqual(tracker.next_fire_at("a"), expected)


if __name__ == "__main__":
    unittest.main()
