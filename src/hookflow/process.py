"""Command execution primitive used by shell-like actions and conditions."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence


class CommandError(RuntimeError):
    """Base class for command execution failures."""


class CommandTimeoutError(CommandError):
    """Raised when a command exceeds its timeout and was killed."""


class CommandSpawnError(CommandError):
    """Raised when a command could not be started."""


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def __call__(
        self,
        command: str | Sequence[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> CommandResult: ...


def run_command(
    command: str | Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout_ms: int | None = None,
) -> CommandResult:
    """Run ``command`` and capture its output.

    A string is executed through ``sh -c`` (``cmd /c`` on Windows); a sequence
    is executed directly as argv. On timeout the whole process group is killed
    before :class:`CommandTimeoutError` is raised.
    """
    argv = _build_argv(command)
    timeout = timeout_ms / 1000 if timeout_ms else None
    posix = os.name == "posix"
    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd or None,
            env=_merge_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            encoding="utf-8",
            errors="replace",
            start_new_session=posix,
        )
    except OSError as exc:
        raise CommandSpawnError(f"無法啟動指令：{exc}") from exc

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        _kill_process_tree(process, posix)
        process.communicate()
        raise CommandTimeoutError(f"指令執行逾時（{timeout_ms} ms）") from exc
    return CommandResult(exit_code=process.returncode, stdout=stdout or "", stderr=stderr or "")


def _build_argv(command: str | Sequence[str]) -> list[str]:
    if isinstance(command, str):
        if not command.strip():
            raise CommandSpawnError("指令不可為空")
        if os.name == "nt":
            return ["cmd", "/c", command]
        return ["sh", "-c", command]
    argv = [str(part) for part in command]
    if not argv:
        raise CommandSpawnError("指令不可為空")
    return argv


def _merge_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    return {str(key): str(value) for key, value in env.items() if value is not None}


def _kill_process_tree(process: subprocess.Popen[str], posix: bool) -> None:
    try:
        if posix:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        process.kill()
