# SPDX-License-Identifier: MIT
"""
Start an emulator for a named AVD in a window the user can see.

There is no portable way to get a visible, detached process, so the command
comes from a per-platform table:

* Windows – run the emulator directly in a new console window
* macOS   – ask Terminal to run it in a new window through ``osascript``
* Linux   – a small ``sh`` script opening ``x-terminal-emulator``, or the
  emulator itself when no terminal is installed

The primary spawn is a direct ``Popen`` of the argument vector. If that fails
the same command is started through the shell before giving up.
"""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Callable, Dict, List, NamedTuple, Optional

from sdk_discovery import Platform, current_platform, locate_tools

from .avdscout import ConfigurationMissing, SpawnFailure
from .notify import Notifier
from .settings import SettingsStore

logger = logging.getLogger(__name__)


class LaunchCommand(NamedTuple):
    argv: List[str]
    cwd: Optional[str] = None
    creationflags: int = 0


_LINUX_WRAPPER = (
    'if command -v x-terminal-emulator >/dev/null 2>&1; then '
    'exec x-terminal-emulator -e "$0" -avd "$1"; '
    'else exec "$0" -avd "$1"; fi'
)


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _windows_command(emulator: str, name: str) -> LaunchCommand:
    flags = getattr(subprocess, "CREATE_NEW_CONSOLE", 0) | getattr(
        subprocess, "CREATE_NEW_PROCESS_GROUP", 0
    )
    return LaunchCommand(
        argv=[emulator, "-avd", name],
        cwd=os.path.dirname(emulator) or None,
        creationflags=flags,
    )


def _macos_command(emulator: str, name: str) -> LaunchCommand:
    script = "tell application \"Terminal\" to do script " + _applescript_quote(
        shlex.join([emulator, "-avd", name])
    )
    return LaunchCommand(argv=["osascript", "-e", script])


def _linux_command(emulator: str, name: str) -> LaunchCommand:
    return LaunchCommand(argv=["sh", "-c", _LINUX_WRAPPER, emulator, name])


LAUNCH_COMMANDS: Dict[Platform, Callable[[str, str], LaunchCommand]] = {
    Platform.WINDOWS: _windows_command,
    Platform.MACOS: _macos_command,
    Platform.LINUX: _linux_command,
}


def build_launch_command(emulator: str, name: str, platform: Platform | None = None) -> LaunchCommand:
    return LAUNCH_COMMANDS[platform or current_platform()](emulator, name)


def _popen_kwargs(cmd: LaunchCommand) -> dict:
    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "cwd": cmd.cwd,
    }
    if cmd.creationflags:
        kwargs["creationflags"] = cmd.creationflags
    else:
        kwargs["start_new_session"] = True
    return kwargs


def _shell_line(argv: List[str]) -> str:
    if current_platform() is Platform.WINDOWS:
        return subprocess.list2cmdline(argv)
    return shlex.join(argv)


def _spawn_direct(cmd: LaunchCommand) -> subprocess.Popen[bytes]:
    return subprocess.Popen(cmd.argv, **_popen_kwargs(cmd))


def _spawn_shell(cmd: LaunchCommand) -> subprocess.Popen[bytes]:
    return subprocess.Popen(_shell_line(cmd.argv), shell=True, **_popen_kwargs(cmd))


def _spawn(cmd: LaunchCommand, log: logging.Logger) -> subprocess.Popen[bytes]:
    try:
        return _spawn_direct(cmd)
    except (OSError, ValueError) as exc:
        log.warning("Primary launch of %s failed: %s; trying the shell", cmd.argv[0], exc)
    try:
        return _spawn_shell(cmd)
    except (OSError, ValueError) as exc:
        raise SpawnFailure(str(exc)) from exc


def launch_avd(
    name: str,
    *,
    settings: SettingsStore,
    notifier: Notifier,
    log: logging.Logger = logger,
) -> None:
    """Start *name* and report the outcome through *notifier*; does not wait for boot."""
    lookup = locate_tools(**settings.tool_config(), log=log)
    try:
        if lookup.error:
            raise ConfigurationMissing(lookup.error)
        cmd = build_launch_command(lookup.paths.emulator, name)
        log.info("Launching emulator for AVD %s: %s", name, shlex.join(cmd.argv))
        proc = _spawn(cmd, log)
    except ConfigurationMissing as exc:
        log.error("Failed to launch emulator: %s", exc)
        notifier.error(f"Failed to launch emulator: {exc}")
        return
    except SpawnFailure as exc:
        log.error("Failed to launch Android emulator: %s", exc)
        notifier.error(f"Failed to launch Android emulator: {exc}")
        return

    log.info("Emulator launch initiated: %s (pid %s)", name, proc.pid)
    notifier.info(f"Launching Android emulator: {name}")
