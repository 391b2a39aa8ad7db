# SPDX-License-Identifier: MIT
"""
Tests for avdscout.launcher
===========================

✔ Per-platform command table
✔ Primary spawn failure falls back to the shell spawn silently
✔ Both spawns failing → one error notification
✔ Tool lookup advisory aborts before anything is spawned
"""
from __future__ import annotations

import shlex
import subprocess
import types

import pytest

import avdscout.launcher as launcher
from avdscout import RecordingNotifier, SettingsStore, build_launch_command
from sdk_discovery import Platform


@pytest.fixture
def settings(tmp_path, sdk):
    store = SettingsStore(tmp_path / "settings.json")
    store.set("sdkPath", str(sdk))
    return store


@pytest.fixture
def spawns(monkeypatch):
    """Record spawn attempts; tests decide which primitive fails."""
    ns = types.SimpleNamespace(direct=[], shell=[], fail_direct=False, fail_shell=False)

    def direct(cmd):
        ns.direct.append(cmd)
        if ns.fail_direct:
            raise FileNotFoundError("x-terminal-emulator")
        return types.SimpleNamespace(pid=101)

    def shell(cmd):
        ns.shell.append(cmd)
        if ns.fail_shell:
            raise OSError("no shell")
        return types.SimpleNamespace(pid=202)

    monkeypatch.setattr(launcher, "_spawn_direct", direct)
    monkeypatch.setattr(launcher, "_spawn_shell", shell)
    return ns


# ---------------------------------------------------------------- command table
def test_windows_command_runs_emulator_directly():
    cmd = build_launch_command("/sdk/emulator/emulator.exe", "Pixel_6", Platform.WINDOWS)
    assert cmd.argv == ["/sdk/emulator/emulator.exe", "-avd", "Pixel_6"]
    assert cmd.cwd == "/sdk/emulator"


def test_macos_command_opens_terminal():
    cmd = build_launch_command("/sdk/emulator/emulator", "My AVD", Platform.MACOS)
    assert cmd.argv[:2] == ["osascript", "-e"]
    assert cmd.argv[2].startswith('tell application "Terminal" to do script ')
    assert shlex.join(["/sdk/emulator/emulator", "-avd", "My AVD"]) in cmd.argv[2]


def test_linux_command_is_shell_wrapper():
    cmd = build_launch_command("/sdk/emulator/emulator", "Pixel_6", Platform.LINUX)
    assert cmd.argv[:2] == ["sh", "-c"]
    assert "x-terminal-emulator" in cmd.argv[2]
    assert cmd.argv[3:] == ["/sdk/emulator/emulator", "Pixel_6"]
    assert cmd.creationflags == 0


def test_popen_kwargs_detach():
    kwargs = launcher._popen_kwargs(launcher.LaunchCommand(argv=["sh"]))
    assert kwargs["start_new_session"] is True
    assert kwargs["stdout"] is subprocess.DEVNULL


# ---------------------------------------------------------------- launch_avd
def test_launch_success(settings, spawns, sdk, monkeypatch):
    monkeypatch.setattr(launcher, "current_platform", lambda: Platform.LINUX)
    notifier = RecordingNotifier()

    launcher.launch_avd("Pixel_6", settings=settings, notifier=notifier)

    assert notifier.messages == [("info", "Launching Android emulator: Pixel_6")]
    assert spawns.direct[0].argv[-2:] == [str(sdk / "emulator" / "emulator"), "Pixel_6"]
    assert spawns.shell == []


def test_primary_failure_uses_secondary_quietly(settings, spawns, caplog):
    spawns.fail_direct = True
    notifier = RecordingNotifier()

    launcher.launch_avd("Pixel_6", settings=settings, notifier=notifier)

    assert notifier.errors == []
    assert notifier.messages == [("info", "Launching Android emulator: Pixel_6")]
    assert len(spawns.shell) == 1
    assert spawns.shell[0] == spawns.direct[0]
    assert "Primary launch" in caplog.text


def test_both_spawns_fail(settings, spawns):
    spawns.fail_direct = spawns.fail_shell = True
    notifier = RecordingNotifier()

    launcher.launch_avd("Pixel_6", settings=settings, notifier=notifier)

    assert notifier.errors == ["Failed to launch Android emulator: no shell"]


def test_lookup_error_aborts(tmp_path, spawns):
    store = SettingsStore(tmp_path / "settings.json")
    store.set("emulatorPath", str(tmp_path / "missing" / "emulator"))
    notifier = RecordingNotifier()

    launcher.launch_avd("Pixel_6", settings=store, notifier=notifier)

    assert spawns.direct == [] and spawns.shell == []
    assert notifier.errors == [
        f"Failed to launch emulator: Configured emulator path does not exist: "
        f"{tmp_path / 'missing' / 'emulator'}"
    ]
