# SPDX-License-Identifier: MIT
"""JSON-backed key-value settings with a persisted and an in-memory scope."""
from __future__ import annotations

import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


class SettingKey:
    SDK_PATH = "sdkPath"
    EMULATOR_PATH = "emulatorPath"
    ADB_PATH = "adbPath"


class ConfigScope(str, Enum):
    GLOBAL = "global"
    SESSION = "session"


def default_settings_path() -> Path:
    override = os.environ.get("AVDSCOUT_SETTINGS")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".avdscout" / "settings.json"


class SettingsStore:
    """
    Read ``sdkPath`` / ``emulatorPath`` / ``adbPath`` and write detected values.

    Session values shadow global ones and are never written to disk.
    """

    _DEFAULTS: Dict[str, Any] = {
        SettingKey.SDK_PATH: "",
        SettingKey.EMULATOR_PATH: "",
        SettingKey.ADB_PATH: "",
    }

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else default_settings_path()
        self._session: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SettingsStore {str(self.path)!r}>"

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, encoding="utf-8") as fp:
                data = json.load(fp)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.error("Could not read settings from %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring settings file %s: not a JSON object", self.path)
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._session:
            return self._session[key]
        with self._lock:
            data = self._load()
        if key in data:
            return data[key]
        if default is None:
            return self._DEFAULTS.get(key)
        return default

    def set(self, key: str, value: Any, scope: ConfigScope | str = ConfigScope.GLOBAL) -> None:
        scope = ConfigScope(scope)
        if scope is ConfigScope.SESSION:
            self._session[key] = value
            return
        with self._lock:
            data = self._load()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        logger.info("Updated setting %s (%s)", key, scope.value)

    def tool_config(self) -> Dict[str, str]:
        """Keyword arguments for :func:`sdk_discovery.locate_tools`."""
        return {
            "sdk_root": self.get(SettingKey.SDK_PATH, "") or "",
            "emulator_path": self.get(SettingKey.EMULATOR_PATH, "") or "",
            "adb_path": self.get(SettingKey.ADB_PATH, "") or "",
        }
