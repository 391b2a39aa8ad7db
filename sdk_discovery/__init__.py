# SPDX-License-Identifier: MIT
"""Android SDK path expansion, tool location and SDK root detection."""

from ._sdk_discovery import (
    DetectionResult,
    Platform,
    ToolLookup,
    ToolPaths,
    current_platform,
    default_avd_home,
    detect_sdk_root,
    expand_path,
    is_valid_sdk_location,
    locate_tools,
)

__all__ = [
    "DetectionResult",
    "Platform",
    "ToolLookup",
    "ToolPaths",
    "current_platform",
    "default_avd_home",
    "detect_sdk_root",
    "expand_path",
    "is_valid_sdk_location",
    "locate_tools",
]
