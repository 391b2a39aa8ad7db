# SPDX-License-Identifier: MIT
"""
avdscout
========

Find the Android emulator tooling, list AVD definitions, tell which of them
are running and launch new instances.

Usage
-----
>>> from avdscout import AvdPanelService
>>> AvdPanelService().list_devices()
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Re-export public API
# ---------------------------------------------------------------------------
from .avdscout import (
    AndroidToolNotFound,
    AvdScoutError,
    ConfigurationMissing,
    CorrelatedDevice,
    Definition,
    DefinitionListing,
    DeviceState,
    RunningInstance,
    SpawnFailure,
    ToolInvocationFailure,
    correlate,
    list_definitions,
    list_running_instances,
    normalize_avd_name,
    reconcile,
    resolve_running_names,
)
from .launcher import build_launch_command, launch_avd
from .notify import LogNotifier, Notifier, RecordingNotifier
from .service import AvdPanelService, DeviceListing
from .settings import ConfigScope, SettingKey, SettingsStore

# Re-export the helpers tests patch
_run = avdscout._run
_parse_avd_names = avdscout._parse_avd_names

__all__: list[str] = [
    # service
    "AvdPanelService",
    "DeviceListing",
    # engine
    "correlate",
    "list_definitions",
    "list_running_instances",
    "normalize_avd_name",
    "reconcile",
    "resolve_running_names",
    "build_launch_command",
    "launch_avd",
    # models
    "CorrelatedDevice",
    "Definition",
    "DefinitionListing",
    "DeviceState",
    "RunningInstance",
    # collaborators
    "ConfigScope",
    "SettingKey",
    "SettingsStore",
    "LogNotifier",
    "Notifier",
    "RecordingNotifier",
    # exceptions
    "AvdScoutError",
    "AndroidToolNotFound",
    "ConfigurationMissing",
    "SpawnFailure",
    "ToolInvocationFailure",
]

# ---------------------------------------------------------------------------
# Optional: version & logging niceties
# ---------------------------------------------------------------------------
try:
    from importlib.metadata import version, PackageNotFoundError

    try:
        __version__: str = version(__name__)
    except PackageNotFoundError:  # running from a checkout
        __version__ = "0.0.0.dev0"
except Exception:  # pragma: no cover
    __version__ = "0.0.0.dev0"

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
