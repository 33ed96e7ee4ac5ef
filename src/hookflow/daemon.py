"""hookflow daemon loop: file watches, scheduler ticks and lifecycle events."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from .hooks.manager import HookManager
from .hooks.types import TriggerEvent
from .scheduler import ScheduleTracker


logger = logging.getLogger(__name__)


def run_tick(manager: HookManager, tracker: ScheduleTracker, now: datetime | None = None) -> list[str]:
    """Queue every scheduled hook that is due; returns the queued hook ids."""
    fired: list[str] = []
    current_time = now or datetime.now().astimezone()
    for hook in tracker.tick(manager.list_hooks(), current_time):
        trigger = TriggerEvent(
            type="schedule",
            data={"schedule": hook.trigger.schedule, "firedAt": current_time.isoformat()},
        )
        if manager.submit(hook.id, trigger) is not None:
            fired.append(hook.id)
    return fired


def run_daemon(
    manager: HookManager,
    *,
    tick_interval_seconds: float = 1.0,
    stop_event: threading.Event | None = None,
) -> None:
    """Run until ``stop_event`` is set or the process is interrupted.

    ``startup`` hooks fire once after loading, ``shutdown`` hooks once before
    the watches and worker pools are released.
    """
    stop = stop_event or threading.Event()
    tracker = ScheduleTracker()
    manager.initialize()
    manager.fire("startup")
    logger.info("Daemon 已啟動，監看中的 hook：%s", ", ".join(manager.watcher.active_ids()) if manager.watcher else "無")

    try:
        while True:
            try:
                run_tick(manager, tracker)
            except Exception as exc:  # noqa: BLE001
                logger.error("Scheduler tick 失敗：%s", exc, exc_info=True)
            if stop.wait(tick_interval_seconds):
                break
    except KeyboardInterrupt:
        logger.info("收到中斷訊號")
    finally:
        try:
            manager.fire("shutdown")
        except Exception as exc:  # noqa: BLE001
            logger.error("執行 shutdown hooks 失敗：%s", exc, exc_info=True)
        manager.close()
        logger.info("Daemon 已停止")
