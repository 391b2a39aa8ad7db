# SPDX-License-Identifier: MIT
from __future__ import annotations

import stat
from pathlib import Path

import pytest

import sdk_discovery._sdk_discovery as sd


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch) -> Path:
    """
    Point the home directory at an empty temp dir and scrub SDK env-vars.

    Every test starts on Linux conventions with no ``~/.android/avd``.
    """
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: fake_home))
    for var in ("ANDROID_HOME", "ANDROID_SDK_ROOT", "AVDSCOUT_SETTINGS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(sd, "current_platform", lambda: sd.Platform.LINUX)
    return fake_home


def make_exe(dir_: Path, name: str) -> Path:
    """Create a real, executable dummy file so os.path.exists sees it."""
    dir_.mkdir(parents=True, exist_ok=True)
    path = dir_ / name
    path.write_text("#!/bin/sh\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.fixture
def sdk(tmp_path) -> Path:
    """A current-layout SDK with emulator/emulator and platform-tools/adb."""
    root = tmp_path / "sdk"
    make_exe(root / "emulator", "emulator")
    make_exe(root / "platform-tools", "adb")
    return root


@pytest.fixture
def avd_home(home) -> Path:
    path = home / ".android" / "avd"
    path.mkdir(parents=True)
    return path
