"""Synchronous command execution against platform device-management binaries.

A :class:`DeviceControlChannel` wraps one binary (``adb``, ``avdmanager``,
``emulator`` or ``xcrun``). The binary path is resolved once at construction
from an explicit path, from an Android SDK root laid out as
``platform-tools/``, ``cmdline-tools/*/bin/`` and ``emulator/``, or from
``PATH``. Commands are always executed as argument vectors so device names
and paths containing spaces never reach a shell.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from maestro_orchestration.errors import ConfigurationError

SDK_ROOT_ENV_VARS = ("ANDROID_HOME", "ANDROID_SDK_ROOT")

# Relative locations searched under an SDK root, in priority order.
SDK_TOOL_LAYOUT: Dict[str, List[str]] = {
    "adb": ["platform-tools/adb"],
    "avdmanager": [
        "cmdline-tools/latest/bin/avdmanager",
        "cmdline-tools/*/bin/avdmanager",
        "tools/bin/avdmanager",
    ],
    "emulator": ["emulator/emulator"],
}


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of a single control-channel command."""

    command: List[str]
    stdout: str
    exit_code: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        rendered = format_command(self.command)
        if detail:
            return f"{rendered} exited with code {self.exit_code}: {detail}"
        return f"{rendered} exited with code {self.exit_code}"


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)


def resolve_sdk_root(environ: Optional[Dict[str, str]] = None) -> Optional[Path]:
    env = os.environ if environ is None else environ
    for name in SDK_ROOT_ENV_VARS:
        value = env.get(name)
        if value:
            return Path(value).expanduser()
    return None


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def resolve_tool(
    tool: str,
    explicit_path: Optional[str] = None,
    sdk_root: Optional[Path] = None,
) -> Path:
    """Locate ``tool`` or raise :class:`ConfigurationError`.

    An explicit path wins and must point at an executable. Otherwise the SDK
    layout is searched, then ``PATH``.
    """

    if explicit_path and explicit_path != tool:
        candidate = Path(explicit_path).expanduser()
        if _is_executable(candidate):
            return candidate.resolve()
        raise ConfigurationError(f"{tool} binary is not executable: {candidate}")

    searched: List[str] = []
    if sdk_root is not None:
        for relative in SDK_TOOL_LAYOUT.get(tool, []):
            pattern = str(sdk_root / relative)
            searched.append(pattern)
            if "*" in relative:
                matches = sorted(sdk_root.glob(relative))
            else:
                matches = [sdk_root / relative]
            for match in matches:
                if _is_executable(match):
                    return match

    on_path = shutil.which(tool)
    if on_path:
        return Path(on_path)

    searched.append("PATH")
    raise ConfigurationError(
        f"Unable to locate the {tool} binary (searched: {', '.join(searched)}). "
        "Set ANDROID_HOME/ANDROID_SDK_ROOT or pass an explicit path."
    )


class DeviceControlChannel:
    """Thin executor around one device-management binary."""

    def __init__(
        self,
        tool: str,
        *,
        explicit_path: Optional[str] = None,
        sdk_root: Optional[Path] = None,
        prefix: Sequence[str] = (),
        serial_flag: Optional[str] = "-s",
        timeout: Optional[float] = None,
    ) -> None:
        self.tool = tool
        self.binary = resolve_tool(tool, explicit_path, sdk_root)
        self._prefix = list(prefix)
        self._serial_flag = serial_flag
        self._timeout = timeout

    def build_command(self, args: Sequence[str], serial: Optional[str] = None) -> List[str]:
        command = [str(self.binary), *self._prefix]
        if serial:
            if self._serial_flag:
                command.extend([self._serial_flag, serial])
            else:
                command.append(serial)
        command.extend(str(arg) for arg in args)
        return command

    def execute(
        self,
        args: Sequence[str],
        serial: Optional[str] = None,
        *,
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command to completion and capture its output.

        A non-zero exit status is reported through the result, not raised.
        A command that exceeds its timeout is reported with exit code 124.
        """

        command = self.build_command(args, serial)
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                input=input_text,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except subprocess.TimeoutExpired as error:
            stdout = error.stdout or ""
            if isinstance(stdout, bytes):
                stdout = stdout.decode("utf-8", errors="replace")
            return CommandResult(
                command=command,
                stdout=stdout,
                exit_code=124,
                stderr=f"timed out after {error.timeout} seconds",
            )
        return CommandResult(
            command=command,
            stdout=completed.stdout or "",
            exit_code=completed.returncode,
            stderr=completed.stderr or "",
        )

    def spawn_detached(self, args: Sequence[str]) -> subprocess.Popen:
        """Start a background process the caller does not wait on."""

        command = self.build_command(args)
        return subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )


def android_channels(
    sdk_root: Optional[Path],
    adb_path: Optional[str] = None,
) -> Dict[str, DeviceControlChannel]:
    return {
        "adb": DeviceControlChannel("adb", explicit_path=adb_path, sdk_root=sdk_root),
        "avdmanager": DeviceControlChannel("avdmanager", sdk_root=sdk_root, serial_flag=None),
        "emulator": DeviceControlChannel("emulator", sdk_root=sdk_root, serial_flag=None),
    }


def simctl_channel(xcrun_path: Optional[str] = None) -> DeviceControlChannel:
    return DeviceControlChannel(
        "xcrun", explicit_path=xcrun_path, prefix=("simctl",), serial_flag=None
    )
