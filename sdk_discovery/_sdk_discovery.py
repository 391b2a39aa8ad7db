from __future__ import annotations
import logging, os, re, sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

if sys.platform.startswith("win"):
    import winreg
else:  # pragma: no cover
    winreg = None

logger = logging.getLogger(__name__)


class Platform(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


def current_platform() -> Platform:
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if sys.platform.startswith("darwin"):
        return Platform.MACOS
    return Platform.LINUX


# ---------- Path expansion ---------------------------------------------------
_PERCENT_VAR = re.compile(r"%([^%]+)%")
_DOLLAR_VAR = re.compile(r"\$(?:\{([^}]+)\}|([A-Za-z0-9_]+))")


def expand_path(raw: str) -> str:
    """
    Expand ``%NAME%``, ``${NAME}``/``$NAME`` and a leading ``~`` in *raw*.

    Unset variables expand to the empty string. The leading ``~`` is replaced
    by the home directory and the remainder is appended unchanged, so
    ``~/x`` becomes ``<home>/x``. No filesystem access happens here.
    """
    if not raw:
        return raw
    result = _PERCENT_VAR.sub(lambda m: os.environ.get(m[1], ""), raw)
    result = _DOLLAR_VAR.sub(lambda m: os.environ.get(m[1] or m[2], ""), result)
    if result.startswith("~"):
        result = str(Path.home()) + result[1:]
    return result


# ---------- Tool location ----------------------------------------------------
@dataclass(frozen=True, slots=True)
class ToolPaths:
    emulator: str
    adb: str
    avd_home: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ToolLookup:
    paths: ToolPaths
    error: str = ""


MISSING_SDK_ADVISORY = (
    "Found Android AVDs but the Android SDK path is not configured. "
    'Run "avdscout detect-sdk" or set it with "avdscout config sdkPath <path>".'
)


def default_avd_home() -> Path:
    return Path.home() / ".android" / "avd"


def _exe_suffix(platform: Platform) -> str:
    return ".exe" if platform is Platform.WINDOWS else ""


def _tool_subpaths(tool: str, platform: Platform) -> list[tuple[str, ...]]:
    """Relative locations of *tool* under an SDK root, current layout first."""
    sfx = _exe_suffix(platform)
    if tool == "emulator":
        subpaths = [
            ("emulator", f"emulator{sfx}"),
            ("tools", f"emulator{sfx}"),
            ("tools", "emulator", f"emulator{sfx}"),
            ("tools", "bin", f"emulator{sfx}"),
        ]
        if sfx:
            subpaths.append(("emulator", "emulator"))
        return subpaths
    if tool == "adb":
        subpaths = [("platform-tools", f"adb{sfx}")]
        if sfx:
            subpaths.append(("platform-tools", "adb"))
        return subpaths
    raise ValueError(f"Unsupported tool: {tool}")


def _scan_sdk(root: str, tool: str, log: logging.Logger) -> Optional[str]:
    for parts in _tool_subpaths(tool, current_platform()):
        cand = os.path.join(root, *parts)
        log.debug("Checking for %s at: %s", tool, cand)
        if os.path.exists(cand):
            log.info("Found %s at: %s", tool, cand)
            return cand
    return None


def _configured_tool(tool: str, value: str, log: logging.Logger) -> tuple[str, str]:
    """Return ``(path, error)`` for an explicitly configured tool path."""
    if not value:
        return "", ""
    if not os.path.exists(value):
        error = f"Configured {tool} path does not exist: {value}"
        log.warning(error)
        return value, error
    log.info("Using configured %s path: %s", tool, value)
    return value, ""


def locate_tools(
    sdk_root: str = "",
    emulator_path: str = "",
    adb_path: str = "",
    *,
    log: logging.Logger = logger,
) -> ToolLookup:
    """
    Resolve the ``emulator`` and ``adb`` executables plus the AVD directory.

    Resolution order per tool (first hit wins):
      1. The configured override, kept even when it does not exist so the
         caller can report the bad value.
      2. Known layouts below *sdk_root*.
      3. The bare command name, left to ``PATH`` at invocation time.

    Never raises; problems are reported through ``ToolLookup.error``.
    """
    sdk_root = expand_path(sdk_root or "")
    emulator_cfg = expand_path(emulator_path or "")
    adb_cfg = expand_path(adb_path or "")
    log.info(
        "Looking for Android tools with: SDK=%s, Emulator=%s, ADB=%s",
        sdk_root, emulator_cfg, adb_cfg,
    )

    avd_home: Optional[str] = None
    candidate = default_avd_home()
    if candidate.exists():
        avd_home = str(candidate)
        log.info("Found AVD home directory: %s", avd_home)

    errors: list[str] = []
    resolved: dict[str, str] = {}
    for tool, configured in (("emulator", emulator_cfg), ("adb", adb_cfg)):
        path, error = _configured_tool(tool, configured, log)
        if error:
            errors.append(error)
        if not path and sdk_root:
            path = _scan_sdk(sdk_root, tool, log) or ""
        if not path:
            log.info("Using %s from PATH", tool)
            path = tool
        resolved[tool] = path

    error = "\n".join(errors)
    if avd_home and not sdk_root:
        error = MISSING_SDK_ADVISORY
    return ToolLookup(
        paths=ToolPaths(emulator=resolved["emulator"], adb=resolved["adb"], avd_home=avd_home),
        error=error,
    )


# ---------- SDK auto-detection -----------------------------------------------
@dataclass(frozen=True, slots=True)
class DetectionResult:
    sdk_root: Optional[str] = None
    success: bool = False


def is_valid_sdk_location(root: str, *, log: logging.Logger = logger) -> bool:
    """True when *root* looks like an SDK in either the legacy or current layout."""
    platform_tools = os.path.join(root, "platform-tools")
    has_adb = os.path.exists(
        os.path.join(platform_tools, f"adb{_exe_suffix(current_platform())}")
    )
    has_platform_tools = os.path.isdir(platform_tools)
    has_tools = os.path.isdir(os.path.join(root, "tools"))
    has_emulator = os.path.isdir(os.path.join(root, "emulator"))

    valid = has_adb or (has_platform_tools and (has_tools or has_emulator))
    if valid:
        log.info("Valid SDK found at: %s", root)
    else:
        log.debug("Invalid SDK structure at: %s", root)
    return valid


def _query_android_studio_path(log: logging.Logger = logger) -> Optional[str]:
    """Read the Android Studio install path from the Windows registry."""
    if winreg is None:
        return None
    for hive in (winreg.HKEY_LOCAL_MACHINE, winreg.HKEY_CURRENT_USER):
        try:
            with winreg.OpenKey(hive, r"SOFTWARE\Android Studio") as reg:
                value = winreg.QueryValueEx(reg, "Path")[0]
        except OSError:
            continue
        if value:
            return str(value).strip()
    log.debug("Android Studio registry key not found")
    return None


def _android_studio_sdk_candidates(log: logging.Logger) -> list[str]:
    program_files = os.environ.get("ProgramFiles") or r"C:\Program Files"
    program_files_x86 = os.environ.get("ProgramFiles(x86)") or r"C:\Program Files (x86)"
    studio_paths = [
        os.path.join(program_files, "Android", "Android Studio"),
        os.path.join(program_files_x86, "Android", "Android Studio"),
        os.path.join(program_files, "Android Studio"),
        os.path.join(program_files_x86, "Android Studio"),
    ]
    registry_path = _query_android_studio_path(log)
    if registry_path:
        studio_paths.append(registry_path)

    candidates: list[str] = []
    for studio in studio_paths:
        if not os.path.exists(studio):
            continue
        log.info("Found Android Studio at: %s", studio)
        parent = os.path.dirname(studio)
        candidates += [
            os.path.join(studio, "Sdk"),
            os.path.join(parent, "Sdk"),
            os.path.join(os.path.dirname(parent), "Sdk"),
        ]
    return candidates


def _conventional_sdk_locations(platform: Platform, log: logging.Logger) -> list[str]:
    """Unexpanded candidate SDK roots for *platform*, most likely first."""
    if platform is Platform.WINDOWS:
        locations = [
            r"%LOCALAPPDATA%\Android\Sdk",
            "%ANDROID_HOME%",
            "%ANDROID_SDK_ROOT%",
            r"C:\Android\Sdk",
        ]
        try:
            locations += _android_studio_sdk_candidates(log)
        except OSError as exc:
            log.warning("Error detecting Android Studio: %s", exc)
        home = str(Path.home())
        locations += [
            os.path.join(home, ".android", "sdk"),
            os.path.join(home, "AppData", "Local", "Android", "sdk"),
        ]
        return locations
    if platform is Platform.MACOS:
        return ["~/Library/Android/sdk", "$ANDROID_HOME", "$ANDROID_SDK_ROOT"]
    return ["~/Android/Sdk", "$ANDROID_HOME", "$ANDROID_SDK_ROOT", "/opt/android-sdk"]


def _avd_hinted_sdk_location(platform: Platform) -> str:
    home = Path.home()
    if platform is Platform.WINDOWS:
        return str(home / "AppData" / "Local" / "Android" / "Sdk")
    if platform is Platform.MACOS:
        return str(home / "Library" / "Android" / "sdk")
    return str(home / "Android" / "Sdk")


def _iter_env_roots() -> Iterable[tuple[str, str]]:
    for var in ("ANDROID_HOME", "ANDROID_SDK_ROOT"):
        value = os.environ.get(var)
        if value:
            yield var, value


def _persist_sdk_root(settings: Any, root: str, log: logging.Logger) -> DetectionResult:
    try:
        settings.set("sdkPath", root, "global")
    except (OSError, ValueError) as exc:
        log.error("Error updating SDK path: %s", exc)
        return DetectionResult(sdk_root=root, success=False)
    return DetectionResult(sdk_root=root, success=True)


def detect_sdk_root(settings: Any, *, log: logging.Logger = logger) -> DetectionResult:
    """
    Search for an Android SDK root and store it as the ``sdkPath`` setting.

    Search order (first hit wins):
      1. ``ANDROID_HOME`` / ``ANDROID_SDK_ROOT`` (existence is enough)
      2. Conventional install locations for the current platform, including
         Android Studio installs found through the registry on Windows
      3. When ``~/.android/avd`` exists, one more platform default
    Only candidates from 2 and 3 are checked with :func:`is_valid_sdk_location`.
    """
    log.info("Attempting to auto-detect Android SDK location...")
    platform = current_platform()

    for var, value in _iter_env_roots():
        if os.path.exists(value):
            log.info("Found SDK via %s: %s", var, value)
            return _persist_sdk_root(settings, value, log)

    for raw in _conventional_sdk_locations(platform, log):
        candidate = expand_path(raw)
        if not candidate:
            continue
        log.debug("Checking potential SDK path: %s", candidate)
        try:
            if os.path.exists(candidate) and is_valid_sdk_location(candidate, log=log):
                log.info("SDK detected at: %s", candidate)
                return _persist_sdk_root(settings, candidate, log)
        except OSError as exc:
            log.warning("Error checking path %s: %s", candidate, exc)

    if default_avd_home().exists():
        log.info("Found .android/avd directory; checking the default SDK install path")
        candidate = _avd_hinted_sdk_location(platform)
        if os.path.exists(candidate) and is_valid_sdk_location(candidate, log=log):
            log.info("Found SDK in default location: %s", candidate)
            return _persist_sdk_root(settings, candidate, log)

    log.warning("Could not automatically detect Android SDK location")
    return DetectionResult()
