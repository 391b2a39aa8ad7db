# SPDX-License-Identifier: MIT
"""
Request/response front of the engine.

One :class:`AvdPanelService` is built at start-up with its collaborators
(settings store, notifier, logger) and answers the ``list-devices``,
``refresh``, ``launch`` and ``detect-sdk`` messages. Every query cycle builds
fresh values; nothing is cached between calls.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sdk_discovery import DetectionResult, detect_sdk_root, locate_tools

from .avdscout import CorrelatedDevice, correlate, list_definitions
from .launcher import launch_avd
from .notify import LogNotifier, Notifier
from .settings import SettingsStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceListing:
    devices: List[CorrelatedDevice] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.devices],
            "error": self.error or None,
        }


class AvdPanelService:
    def __init__(
        self,
        settings: SettingsStore | None = None,
        notifier: Notifier | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.log = log or logger
        self.settings = settings or SettingsStore()
        self.notifier = notifier or LogNotifier(self.log)
        self._launches: Set[asyncio.Task[None]] = set()

    # ---------------------------------------------------------------- queries
    def list_devices(self) -> DeviceListing:
        lookup = locate_tools(**self.settings.tool_config(), log=self.log)
        listing = list_definitions(lookup.paths, log=self.log)
        if not listing.definitions:
            error = "\n".join(e for e in (lookup.error, listing.error) if e)
            return DeviceListing(devices=[], error=error)
        devices = correlate(listing.definitions, lookup.paths.adb, log=self.log)
        return DeviceListing(devices=devices, error=lookup.error)

    def launch(self, name: str) -> None:
        launch_avd(name, settings=self.settings, notifier=self.notifier, log=self.log)

    def detect_sdk(self) -> DetectionResult:
        result = detect_sdk_root(self.settings, log=self.log)
        if result.success:
            self.notifier.info(f"Android SDK detected at: {result.sdk_root}")
        return result

    # ---------------------------------------------------------------- protocol
    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        command = message.get("command")
        if command in ("list-devices", "refresh"):
            listing = await asyncio.to_thread(self.list_devices)
            return {"command": "device-list", **listing.to_dict()}
        if command == "launch":
            name: Optional[str] = message.get("name")
            if not name:
                return {"command": "error", "error": "launch requires a device name"}
            task = asyncio.create_task(asyncio.to_thread(self.launch, name))
            self._launches.add(task)
            task.add_done_callback(self._launches.discard)
            return {"command": "launch-requested", "name": name}
        if command == "detect-sdk":
            result = await asyncio.to_thread(self.detect_sdk)
            return {
                "command": "sdk-detection-result",
                "sdkRoot": result.sdk_root,
                "success": result.success,
            }
        self.log.warning("Unknown command: %r", command)
        return {"command": "error", "error": f"Unknown command: {command}"}
