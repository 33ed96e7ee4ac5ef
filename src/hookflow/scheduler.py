"""Cron evaluation for hooks with ``schedule`` triggers."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .hooks.types import Hook


logger = logging.getLogger(__name__)

CronSpec = tuple[set[int], set[int], set[int], set[int], set[int]]


def parse_cron_expression(expr: str) -> CronSpec:
    parts = [part for part in expr.split() if part.strip()]
    if len(parts) != 5:
        raise ValueError("cron 格式需為 5 欄位")
    minute = _parse_cron_field(parts[0], 0, 59, "minute")
    hour = _parse_cron_field(parts[1], 0, 23, "hour")
    dom = _parse_cron_field(parts[2], 1, 31, "day_of_month")
    month = _parse_cron_field(parts[3], 1, 12, "month")
    dow = _parse_cron_field(parts[4], 0, 6, "day_of_week")
    return minute, hour, dom, month, dow


def next_cron_after(expr: str | CronSpec, base: datetime) -> datetime:
    minute_set, hour_set, dom_set, month_set, dow_set = (
        parse_cron_expression(expr) if isinstance(expr, str) else expr
    )
    candidate = base.replace(second=0, microsecond=0) + timedelta(minutes=1)
    for _ in range(60 * 24 * 366):
        if (
            candidate.minute in minute_set
            and candidate.hour in hour_set
            and candidate.day in dom_set
            and candidate.month in month_set
            and _cron_weekday(candidate) in dow_set
        ):
            return candidate
        candidate += timedelta(minutes=1)
    raise ValueError("找不到下一次 cron 時間")


def _parse_cron_field(field: str, min_value: int, max_value: int, label: str) -> set[int]:
    values: set[int] = set()
    for chunk in field.strip().split(","):
        if not chunk:
            raise ValueError(f"cron {label} 不支援格式：{field}")
        values.update(_parse_cron_chunk(chunk, min_value, max_value, label))
    return values


def _parse_cron_chunk(chunk: str, min_value: int, max_value: int, label: str) -> set[int]:
    step = 1
    if "/" in chunk:
        chunk, step_text = chunk.split("/", 1)
        if not step_text.isdigit() or int(step_text) <= 0:
            raise ValueError(f"cron {label} step 無效")
        step = int(step_text)
    if chunk == "*":
        start, end = min_value, max_value
    elif "-" in chunk:
        start_text, end_text = chunk.split("-", 1)
        if not start_text.isdigit() or not end_text.isdigit():
            raise ValueError(f"cron {label} 不支援格式：{chunk}")
        start, end = _normalize(int(start_text), label), _normalize(int(end_text), label)
    elif chunk.isdigit():
        start = end = _normalize(int(chunk), label)
    else:
        raise ValueError(f"cron {label} 不支援格式：{chunk}")
    if not (min_value <= start <= max_value and min_value <= end <= max_value) or start > end:
        raise ValueError(f"cron {label} 超出範圍")
    return set(range(start, end + 1, step))


def _normalize(value: int, label: str) -> int:
    if label == "day_of_week" and value == 7:
        return 0
    return value


def _cron_weekday(candidate: datetime) -> int:
    return (candidate.weekday() + 1) % 7


class ScheduleTracker:
    """Remembers the next fire time per scheduled hook and reports which are due.

    The tracker never executes hooks; the host passes the due hooks to the
    engine the same way a manual invocation would.
    """

    def __init__(self) -> None:
        self._next_fire: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def tick(self, hooks: Iterable[Hook], now: datetime | None = None) -> list[Hook]:
        current_time = (now or datetime.now().astimezone()).astimezone()
        due: list[Hook] = []
        seen: set[str] = set()
        with self._lock:
            for hook in hooks:
                if not hook.enabled or hook.trigger.type != "schedule" or not hook.trigger.schedule:
                    continue
                seen.add(hook.id)
                expression = hook.trigger.schedule
                entry = self._next_fire.get(hook.id)
                try:
                    if entry is None or entry[0] != expression:
                        # first sighting only arms the schedule
                        self._next_fire[hook.id] = (expression, next_cron_after(expression, current_time))
                        continue
                    if current_time >= entry[1]:
                        due.append(hook)
                        self._next_fire[hook.id] = (expression, next_cron_after(expression, current_time))
                except ValueError as exc:
                    logger.error("解析 cron 失敗（hook %s）：%s", hook.id, exc)
                    self._next_fire.pop(hook.id, None)
            for stale in set(self._next_fire) - seen:
                self._next_fire.pop(stale, None)
        return due

    def next_fire_at(self, hook_id: str) -> datetime | None:
        with self._lock:
            entry = self._next_fire.get(hook_id)
        return entry[1] if entry else None
