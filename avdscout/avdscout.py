# SPDX-License-Identifier: MIT
"""
Discovery and correlation of Android Virtual Devices.

* Lists AVD definitions through ``emulator -list-avds`` with a directory scan
  of ``~/.android/avd`` as fallback
* Finds running emulator instances through ``adb devices``
* Recovers the AVD name behind each instance through a chain of strategies
  (``emu avd name``, system properties, process command lines, the console)
* Reconciles definitions with running names using exact, normalized and
  partial matching
"""
from __future__ import annotations

###############################################################################
# Standard library
###############################################################################
import logging
import os
import re
import shlex
import socket
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Final, Iterable, Iterator, List, Optional

###############################################################################
# Third-party
###############################################################################
import adbutils  # pip install adbutils
import psutil  # pip install psutil

from sdk_discovery import ToolPaths

###############################################################################
# Logging
###############################################################################
logger = logging.getLogger(__name__)


###############################################################################
# Exceptions
###############################################################################
class AvdScoutError(RuntimeError):
    """Base class for every recoverable failure raised by this package."""


class AndroidToolNotFound(AvdScoutError):
    """Raised when an SDK executable is missing or not on PATH."""


class ConfigurationMissing(AvdScoutError):
    """Raised when no usable SDK or tool configuration is available."""


class ToolInvocationFailure(AvdScoutError):
    """Raised when a tool exits non-zero, times out or prints garbage."""


class SpawnFailure(AvdScoutError):
    """Raised when an emulator process could not be created."""


###############################################################################
# Helper wrappers
###############################################################################
ADB_QUERY_TIMEOUT: Final = 10
CONSOLE_TIMEOUT: Final = 3
DEFAULT_CONSOLE_PORT: Final = 5554

NO_DEVICES_MESSAGE: Final = (
    "No Android virtual devices found. Create some using Android Studio."
)


def _run(cmd: List[str], *, timeout: int | None = None) -> subprocess.CompletedProcess[bytes]:
    # On Windows, any on-disk file without .exe/.com gets launched via cmd.exe
    if sys.platform.startswith("win") and cmd:
        exe_path = Path(cmd[0])
        if exe_path.is_file() and exe_path.suffix.lower() not in {".exe", ".com"}:
            cmd = ["cmd", "/c", *cmd]

    logger.debug("$ %s", " ".join(map(shlex.quote, cmd)))
    try:
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise AndroidToolNotFound(f"{cmd[0]} not found: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode(errors="replace").strip()
        raise ToolInvocationFailure(
            f"{cmd[0]} exited {exc.returncode}: {stderr}"
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise ToolInvocationFailure(f"{cmd[0]} timed out after {timeout}s") from exc
    except OSError as exc:
        raise AndroidToolNotFound(f"{cmd[0]} could not be executed: {exc}") from exc


def _stdout(cp: subprocess.CompletedProcess[bytes]) -> str:
    return (cp.stdout or b"").decode(errors="replace")


def _adb_client() -> adbutils.AdbClient:
    return adbutils.AdbClient(host="127.0.0.1", port=5037)


###############################################################################
# Models
###############################################################################
class DeviceState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True, slots=True)
class Definition:
    name: str


@dataclass(frozen=True, slots=True)
class RunningInstance:
    instance_id: str
    port: int


@dataclass(frozen=True, slots=True)
class CorrelatedDevice:
    name: str
    state: DeviceState = DeviceState.STOPPED

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "state": self.state.value}


@dataclass(frozen=True, slots=True)
class DefinitionListing:
    definitions: List[Definition]
    error: str = ""


###############################################################################
# Output parsers
###############################################################################
_DEVICE_LINE: Final = re.compile(r"^(emulator-(\d+))\s+device\b")
_CONSOLE_ACK: Final = re.compile(r"^(ok|ko\b.*|android console\b.*|avd name)$", re.IGNORECASE)
_CONSOLE_DONE: Final = re.compile(rb"(^|\n)(OK\r?\n|KO\b[^\n]*\n)")


def _parse_avd_names(output: str) -> List[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def _parse_adb_devices(output: str) -> Iterator[RunningInstance]:
    for raw in output.splitlines():
        if m := _DEVICE_LINE.match(raw.strip()):
            yield RunningInstance(instance_id=m[1], port=int(m[2]))


def _parse_emu_avd_name(output: str) -> Optional[str]:
    """
    First meaningful line of ``adb emu avd name`` (the reply ends with OK).

    A ``KO`` line means the console rejected the command, so there is no name.
    """
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        if _CONSOLE_ACK.match(line):
            if line[:2].upper() == "KO":
                return None
            continue
        return line
    return None


def _parse_emulator_cmdline(args: Iterable[str]) -> tuple[Optional[str], Optional[int]]:
    """Return ``(avd_name, console_port)`` from an emulator command line."""
    name: Optional[str] = None
    port: Optional[int] = None
    it = iter(args)
    for arg in it:
        if arg == "-avd":
            name = next(it, None)
        elif arg.startswith("@") and len(arg) > 1 and name is None:
            name = arg[1:]
        elif arg in ("-port", "-ports"):
            value = next(it, "")
            head = value.split(",", 1)[0]
            if head.isdigit():
                port = int(head)
    return name, port


def _parse_console_reply(reply: str) -> Optional[str]:
    """
    Pick the AVD name out of an emulator console reply.

    Only a textual line that is neither the banner, an acknowledgement nor the
    echoed command is accepted.
    """
    for raw in reply.splitlines():
        line = raw.strip().strip("'\"").strip()
        if not line:
            continue
        if _CONSOLE_ACK.match(line):
            continue
        return line
    return None


def normalize_avd_name(name: str) -> str:
    """Lower-case *name* and drop separators and punctuation."""
    result = re.sub(r"[\s_-]+", "", name.strip().lower(), flags=re.ASCII)
    return re.sub(r"[\W_]+", "", result, flags=re.ASCII)


###############################################################################
# Definition enumeration
###############################################################################
def _definitions_from_emulator(emulator: str, log: logging.Logger) -> List[str]:
    try:
        log.info("Executing: %s -list-avds", emulator)
        output = _stdout(_run([emulator, "-list-avds"]))
    except AvdScoutError as exc:
        log.warning("Error executing emulator -list-avds: %s", exc)
        return []
    names = _parse_avd_names(output)
    if names:
        log.info("emulator -list-avds output: %s", ", ".join(names))
    else:
        log.info("emulator -list-avds returned empty list")
    return names


def _definitions_from_avd_home(avd_home: str, log: logging.Logger) -> List[str]:
    log.info("Trying to read AVD files from %s", avd_home)
    try:
        files = os.listdir(avd_home)
    except OSError as exc:
        log.warning("Error reading AVD home directory: %s", exc)
        return []
    names = [f[: -len(".ini")] for f in files if f.endswith(".ini")]
    names = sorted(n for n in names if n and n != "config")
    log.info("Found AVD files: %s", ", ".join(names))
    return names


def list_definitions(paths: ToolPaths, *, log: logging.Logger = logger) -> DefinitionListing:
    names = _definitions_from_emulator(paths.emulator, log)
    if not names and paths.avd_home:
        names = _definitions_from_avd_home(paths.avd_home, log)
    if not names:
        log.warning("No AVDs found by any detection method")
        return DefinitionListing(definitions=[], error=NO_DEVICES_MESSAGE)
    log.info("Found %d AVDs: %s", len(names), ", ".join(names))
    return DefinitionListing(definitions=[Definition(n) for n in names])


###############################################################################
# Running instances
###############################################################################
def list_running_instances(adb: str, *, log: logging.Logger = logger) -> List[RunningInstance]:
    try:
        output = _stdout(_run([adb, "devices"]))
    except AvdScoutError as exc:
        log.warning("Error getting running emulators: %s", exc)
        return []
    instances = list(_parse_adb_devices(output))
    for inst in instances:
        log.info("Found running emulator: %s", inst.instance_id)
    if not instances:
        log.info("No running emulators found")
    return instances


# ---------------------------------------------------------------- name recovery
NameStrategy = Callable[[str, RunningInstance], Optional[str]]


def _name_via_emu_command(adb: str, inst: RunningInstance) -> Optional[str]:
    cp = _run([adb, "-s", inst.instance_id, "emu", "avd", "name"], timeout=ADB_QUERY_TIMEOUT)
    return _parse_emu_avd_name(_stdout(cp))


_AVD_NAME_PROPS: Final = ("ro.boot.qemu.avd_name", "ro.kernel.qemu.avd_name")


def _name_via_getprop(adb: str, inst: RunningInstance) -> Optional[str]:
    dev = _adb_client().device(inst.instance_id)
    for prop in _AVD_NAME_PROPS:
        value = dev.shell(["getprop", prop], timeout=ADB_QUERY_TIMEOUT).strip()
        if value:
            return value
    return None


_EMULATOR_PROCESS: Final = re.compile(r"^(emulator|qemu-system-[\w-]+)(\.exe)?$", re.IGNORECASE)


def _emulator_cmdlines() -> Iterator[List[str]]:
    for proc in psutil.process_iter(["name", "cmdline"]):
        info = proc.info
        name = info.get("name") or ""
        if _EMULATOR_PROCESS.match(name) and info.get("cmdline"):
            yield info["cmdline"]


def _name_via_process_list(adb: str, inst: RunningInstance) -> Optional[str]:
    """
    Match the instance port against ``-port``/``-ports`` on emulator command lines.

    A command line without a port only stands for 5554 when it is the sole
    such process; with several the port is unknowable from here.
    """
    portless: List[str] = []
    for cmdline in _emulator_cmdlines():
        name, port = _parse_emulator_cmdline(cmdline)
        if not name:
            continue
        if port is None:
            portless.append(name)
        elif port == inst.port:
            return name
    if len(portless) == 1 and inst.port == DEFAULT_CONSOLE_PORT:
        return portless[0]
    return None


def _console_read_until_ok(conn: socket.socket) -> str:
    data = b""
    while not _CONSOLE_DONE.search(data):
        chunk = conn.recv(4096)
        if not chunk:
            break
        data += chunk
    return data.decode(errors="replace")


def _console_auth_token(banner: str) -> Optional[bytes]:
    if "auth_token" not in banner:
        return None
    lines = [line.strip().strip("'") for line in banner.splitlines()]
    token_path = next(
        (line for line in lines if line.endswith("emulator_console_auth_token")),
        str(Path.home() / ".emulator_console_auth_token"),
    )
    with open(token_path, "rb") as fp:
        return fp.read().strip()


def _name_via_console(adb: str, inst: RunningInstance) -> Optional[str]:
    with socket.create_connection(("127.0.0.1", inst.port), timeout=CONSOLE_TIMEOUT) as conn:
        banner = _console_read_until_ok(conn)
        token = _console_auth_token(banner)
        if token:
            conn.sendall(b"auth " + token + b"\r\n")
            _console_read_until_ok(conn)
        conn.sendall(b"avd name\r\n")
        reply = _console_read_until_ok(conn)
        conn.sendall(b"quit\r\n")
    logger.debug("Console reply from %s: %r", inst.instance_id, reply)
    return _parse_console_reply(reply)


NAME_STRATEGIES: Final[tuple[tuple[str, NameStrategy], ...]] = (
    ("emu avd name", _name_via_emu_command),
    ("getprop", _name_via_getprop),
    ("process list", _name_via_process_list),
    ("console", _name_via_console),
)


def _first_hit(
    adb: str, inst: RunningInstance, log: logging.Logger
) -> tuple[Optional[str], List[str]]:
    """Run the strategies in order; return the first name and the skip notes."""
    skipped: List[str] = []
    for label, strategy in NAME_STRATEGIES:
        try:
            name = strategy(adb, inst)
        except Exception as exc:  # any failing probe only disqualifies itself
            skipped.append(f"{label}: {exc}")
            continue
        if name:
            log.info("Found AVD name via %s: %s (%s)", label, name, inst.instance_id)
            return name, skipped
        skipped.append(f"{label}: no result")
    return None, skipped


def resolve_running_names(
    instances: Iterable[RunningInstance], adb: str, *, log: logging.Logger = logger
) -> dict[str, str]:
    """Map recovered AVD name → instance id for every identifiable instance."""
    running: dict[str, str] = {}
    for inst in instances:
        name, skipped = _first_hit(adb, inst, log)
        for note in skipped:
            log.debug("%s skipped %s", inst.instance_id, note)
        if name is None:
            log.warning("Could not determine AVD name for emulator %s", inst.instance_id)
            continue
        running[name] = inst.instance_id
    log.info("Found %d running AVDs: %s", len(running), ", ".join(running))
    return running


###############################################################################
# Reconciliation
###############################################################################
def _match_running(name: str, running: dict[str, str], normalized: dict[str, str]) -> Optional[tuple[str, str]]:
    if name in running:
        return "exact", running[name]
    if (key := normalize_avd_name(name)) in normalized:
        return "normalized", normalized[key]
    # Prefix-related names can collide here; accepted for truncated names.
    for running_name, instance_id in running.items():
        if running_name in name or name in running_name:
            return f"partial match with {running_name!r}", instance_id
    return None


def reconcile(
    definitions: Iterable[Definition],
    running: dict[str, str],
    *,
    log: logging.Logger = logger,
) -> List[CorrelatedDevice]:
    normalized = {normalize_avd_name(n): iid for n, iid in running.items()}
    seen: set[str] = set()
    devices: List[CorrelatedDevice] = []
    for definition in definitions:
        if definition.name in seen:
            continue
        seen.add(definition.name)
        match = _match_running(definition.name, running, normalized)
        if match is None:
            log.info("AVD %s is not running", definition.name)
            devices.append(CorrelatedDevice(definition.name))
            continue
        how, instance_id = match
        log.info("Marked AVD %s as running (%s, emulator ID: %s)", definition.name, how, instance_id)
        devices.append(CorrelatedDevice(definition.name, DeviceState.RUNNING))
    return devices


def correlate(
    definitions: Iterable[Definition], adb: str, *, log: logging.Logger = logger
) -> List[CorrelatedDevice]:
    instances = list_running_instances(adb, log=log)
    running = resolve_running_names(instances, adb, log=log) if instances else {}
    return reconcile(definitions, running, log=log)
