"""
The external build/upload tool (arduino-cli).

Only two operations are used: listing connected devices and uploading to one.
The download location of the tool is resolved from a lookup table keyed by the
host operating system and CPU architecture.
"""

import json
import os
import platform
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from csinstaller.constants import (
    ARDUINO_CLI_ARCHIVES,
    ARDUINO_CLI_DOWNLOAD_BASE,
    ARDUINO_CLI_NAME,
    TOOL_CACHE_DIR_NAME,
)
from csinstaller.exceptions import BuildToolError, DependencyFetchError
from csinstaller.log_utils import logger

_ARCH_ALIASES = {
    "x86_64": "64bit",
    "amd64": "64bit",
    "i386": "32bit",
    "i486": "32bit",
    "i586": "32bit",
    "i686": "32bit",
    "x86": "32bit",
    "arm64": "ARM64",
    "aarch64": "ARM64",
    "armv7l": "ARMv7",
    "armv7": "ARMv7",
    "armhf": "ARMv7",
}


def host_architecture() -> Tuple[str, str]:
    """
    Return the (operating system, architecture label) pair for this host.

    The label is one of "32bit", "64bit", "ARMv7" or "ARM64". Unknown machine
    names fall back to the interpreter's word size.
    """
    system = platform.system()
    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine)
    if arch is None:
        arch = "64bit" if sys.maxsize > 2**32 else "32bit"
    return system, arch


def resolve_tool_archive_url(host: Optional[Tuple[str, str]] = None) -> str:
    """
    Resolve the build tool archive URL for a host.

    Raises:
        DependencyFetchError: If no archive is published for the host.
    """
    system, arch = host or host_architecture()
    archive_name = ARDUINO_CLI_ARCHIVES.get((system, arch))
    if archive_name is None:
        raise DependencyFetchError(
            f"{ARDUINO_CLI_NAME} is not available for this host",
            details=f"{system} {arch}",
        )
    return f"{ARDUINO_CLI_DOWNLOAD_BASE}{archive_name}"


def default_tool_cache_dir() -> str:
    """Return the cache directory for the build tool under the system temp dir."""
    return os.path.join(tempfile.gettempdir(), TOOL_CACHE_DIR_NAME)


def tool_executable_path(cache_dir: str, system: Optional[str] = None) -> str:
    """Return the expected path of the build tool executable inside `cache_dir`."""
    name = ARDUINO_CLI_NAME
    if (system or platform.system()) == "Windows":
        name += ".exe"
    return os.path.join(cache_dir, name)


@dataclass
class Device:
    """A connected device as reported by the build tool."""

    address: str
    protocol: Optional[str] = None
    board_name: Optional[str] = None
    fqbn: Optional[str] = None

    @property
    def label(self) -> str:
        board = self.board_name or "Unknown board"
        return f"{self.address} - {board}"


def parse_board_list(output: str) -> List[Device]:
    """
    Parse `board list --format json` output.

    Both the current shape ({"detected_ports": [...]}) and the older bare list
    are accepted. Ports without an address are ignored.

    Raises:
        ValueError: If the output is not JSON of either shape.
    """
    data: Any = json.loads(output or "[]")
    if isinstance(data, dict):
        ports = data.get("detected_ports") or []
    elif isinstance(data, list):
        ports = data
    else:
        raise ValueError(f"Unexpected board list payload: {type(data).__name__}")

    devices: List[Device] = []
    for item in ports:
        if not isinstance(item, dict):
            continue
        port = item.get("port") if isinstance(item.get("port"), dict) else item
        address = port.get("address")
        if not address:
            continue
        boards = item.get("matching_boards") or item.get("boards") or []
        board = boards[0] if boards and isinstance(boards[0], dict) else {}
        devices.append(
            Device(
                address=address,
                protocol=port.get("protocol"),
                board_name=board.get("name"),
                fqbn=board.get("fqbn"),
            )
        )
    return devices


class BuildTool:
    """Thin wrapper running the build tool executable."""

    def __init__(self, executable: str, timeout: Optional[float] = None):
        self.executable = executable
        self.timeout = timeout

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        command = [self.executable, *args]
        logger.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise BuildToolError(
                f"Failed to run {ARDUINO_CLI_NAME}", details=str(exc)
            ) from exc
        if result.returncode != 0:
            raise BuildToolError(
                f"{ARDUINO_CLI_NAME} {args[0]} failed",
                returncode=result.returncode,
                details=(result.stderr or result.stdout).strip() or None,
            )
        return result

    def list_devices(self) -> List[Device]:
        """
        Return the devices currently connected to this host.

        Raises:
            BuildToolError: If the tool cannot be run or its output cannot be parsed.
        """
        result = self._run(["board", "list", "--format", "json"])
        try:
            return parse_board_list(result.stdout)
        except ValueError as exc:
            raise BuildToolError(
                f"Could not parse {ARDUINO_CLI_NAME} board list", details=str(exc)
            ) from exc

    def upload(
        self, device: Device, sketch_dir: str, fqbn: Optional[str] = None
    ) -> None:
        """
        Upload the compiled sketch in `sketch_dir` to `device`.

        Raises:
            BuildToolError: If no board identifier is known or the upload fails.
        """
        board = fqbn or device.fqbn
        if not board:
            raise BuildToolError(
                "No board identifier (FQBN) known for device", details=device.address
            )
        self._run(["upload", "-b", board, "-p", device.address, sketch_dir])
        logger.info(f"Uploaded {sketch_dir} to {device.label}")
