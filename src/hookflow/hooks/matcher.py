"""Hook matcher for event-driven triggers."""

from __future__ import annotations

from typing import Iterable

from .types import Hook


def _match_trigger(hook: Hook, trigger_type: str, event: str | None, command: str | None) -> bool:
    trigger = hook.trigger
    if trigger.type != trigger_type:
        return False
    if trigger_type == "git_event" and trigger.event and event and trigger.event != event:
        return False
    if trigger_type == "command" and trigger.command and trigger.command != command:
        return False
    return True


def match(
    hooks: Iterable[Hook],
    trigger_type: str,
    *,
    event: str | None = None,
    command: str | None = None,
) -> list[Hook]:
    """Enabled hooks whose trigger answers ``trigger_type``.

    A ``git_event`` hook without an ``event`` answers every git event; a
    ``command`` hook with a ``command`` name only answers that command.
    """
    matches: list[Hook] = []
    for hook in hooks:
        if not hook.enabled:
            continue
        if not _match_trigger(hook, trigger_type, event, command):
            continue
        matches.append(hook)
    return matches
