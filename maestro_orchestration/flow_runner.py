"""Invoke the Maestro CLI against an explicit device."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from maestro_orchestration import console
from maestro_orchestration.control_channel import format_command
from maestro_orchestration.errors import ConfigurationError


def build_flow_command(maestro: str, flow_path: Path, device: Optional[str] = None) -> List[str]:
    command = [maestro]
    if device:
        command.extend(["--device", device])
    command.extend(["test", str(flow_path)])
    return command


def resolve_maestro(maestro: str) -> str:
    resolved = shutil.which(maestro)
    if resolved is None:
        raise ConfigurationError(f"Maestro executable not found: {maestro}")
    return resolved


class MaestroFlowRunner:
    """Runs flows with stdout/stderr inherited so output reaches the caller verbatim.

    The executable is resolved on construction, before any device is touched.
    """

    def __init__(self, maestro: str = "maestro") -> None:
        self._maestro = resolve_maestro(maestro)

    def run(self, flow_path: Path, device: Optional[str] = None) -> int:
        command = build_flow_command(self._maestro, flow_path, device)
        console.info(f"Running Maestro tests: {format_command(command)}")
        try:
            completed = subprocess.run(command)
        except FileNotFoundError as error:
            raise ConfigurationError(f"Maestro executable not found: {self._maestro}") from error
        if completed.returncode == 0:
            console.info("Finished Maestro tests.")
        else:
            console.error(f"Maestro tests exited with code {completed.returncode}")
        return completed.returncode
