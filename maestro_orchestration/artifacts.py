"""Locate the freshly built application and install it on the device."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from maestro_orchestration import console
from maestro_orchestration.control_channel import DeviceControlChannel, format_command
from maestro_orchestration.errors import ArtifactNotFoundError, InstallationError


def find_artifact(directory: Path, pattern: str, *, selection: str = "first") -> Path:
    """Return the single build output matching ``pattern`` inside ``directory``.

    With several matches the ``first`` policy takes the first by sorted name
    and ``newest`` takes the most recently modified one.
    """

    if not directory.is_dir():
        raise ArtifactNotFoundError(
            f"Error: build output directory not found: {directory}"
        )
    matches: List[Path] = sorted(directory.glob(pattern))
    if not matches:
        raise ArtifactNotFoundError(
            f"Error: no file matching {pattern!r} found in build outputs at {directory}."
        )
    if selection == "newest":
        chosen = max(matches, key=lambda path: path.stat().st_mtime)
    else:
        chosen = matches[0]
    if len(matches) > 1:
        ignored = ", ".join(path.name for path in matches if path != chosen)
        console.warning(
            f"Found {len(matches)} artifacts matching {pattern!r}; using {chosen.name} "
            f"({selection} policy), ignoring {ignored}"
        )
    console.info(f"Found app artifact at: {chosen}")
    return chosen


def run_build(command: Sequence[str], *, cwd: Optional[Path] = None) -> None:
    if not command:
        return
    console.info(f"Building app: {format_command(command)}")
    try:
        subprocess.run(list(command), check=True, cwd=cwd)
    except FileNotFoundError as error:
        raise ArtifactNotFoundError(f"Build command not found: {error}") from error
    except subprocess.CalledProcessError as error:
        raise ArtifactNotFoundError(
            f"Build command {format_command(command)} exited with code {error.returncode}"
        ) from error


class ApkInstaller:
    def __init__(self, adb: DeviceControlChannel) -> None:
        self._adb = adb

    def install(self, serial: str, artifact: Path) -> None:
        console.info(f"Installing {artifact.name} on {serial}...")
        result = self._adb.execute(["install", "-r", str(artifact)], serial)
        # adb reports some install failures on stdout with a zero exit code.
        if not result.ok or "Failure" in result.stdout:
            raise InstallationError(f"Failed to install {artifact}: {result.describe()}")
        console.info("APK installed on Android emulator.")


class SimulatorAppInstaller:
    def __init__(self, simctl: DeviceControlChannel) -> None:
        self._simctl = simctl

    def install(self, udid: str, artifact: Path) -> None:
        console.info(f"Installing {artifact.name} on simulator {udid}...")
        result = self._simctl.execute(["install", udid, str(artifact)])
        if not result.ok:
            raise InstallationError(f"Failed to install {artifact}: {result.describe()}")
        console.info("App installed on iOS simulator.")
