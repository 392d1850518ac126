"""Query and tear down the devices currently registered with the control channel."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from maestro_orchestration import console
from maestro_orchestration.control_channel import DeviceControlChannel

KILL_SETTLE_SECONDS = 3.0
EMULATOR_SERIAL = re.compile(r"^emulator-(?P<port>\d+)$")
SIMULATOR_RECORD = re.compile(
    r"^\s*(?P<name>.+?) \((?P<udid>[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-"
    r"[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12})\) \((?P<state>[^)]+)\)\s*$"
)


class BootState(str, Enum):
    UNKNOWN = "unknown"
    BOOTING = "booting"
    BOOTED = "booted"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    SHUTDOWN = "shutdown"

    @classmethod
    def from_label(cls, label: str) -> "BootState":
        normalized = label.strip().lower().replace(" ", "")
        return _STATE_ALIASES.get(normalized, cls.UNKNOWN)


_STATE_ALIASES = {
    "device": BootState.BOOTED,
    "booted": BootState.BOOTED,
    "booting": BootState.BOOTING,
    "creating": BootState.BOOTING,
    "offline": BootState.OFFLINE,
    "unauthorized": BootState.UNAUTHORIZED,
    "shutdown": BootState.SHUTDOWN,
    "shuttingdown": BootState.SHUTDOWN,
}


@dataclass(frozen=True)
class DeviceHandle:
    """A device process registered as running."""

    serial: str
    port: Optional[int] = None
    boot_state: BootState = BootState.UNKNOWN
    name: Optional[str] = None


def _port_from_serial(serial: str) -> Optional[int]:
    match = EMULATOR_SERIAL.match(serial)
    if not match:
        return None
    return int(match.group("port"))


def parse_adb_devices(raw: str) -> List[DeviceHandle]:
    handles: List[DeviceHandle] = []
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("List of devices") or stripped.startswith("*"):
            continue
        parts = stripped.split()
        if len(parts) < 2:
            continue
        serial, state = parts[0], parts[1]
        handles.append(
            DeviceHandle(
                serial=serial,
                port=_port_from_serial(serial),
                boot_state=BootState.from_label(state),
            )
        )
    return handles


def parse_simctl_devices(raw: str) -> List[DeviceHandle]:
    handles: List[DeviceHandle] = []
    for line in raw.splitlines():
        match = SIMULATOR_RECORD.match(line)
        if not match:
            continue
        handles.append(
            DeviceHandle(
                serial=match.group("udid"),
                boot_state=BootState.from_label(match.group("state")),
                name=match.group("name").strip(),
            )
        )
    return handles


class AndroidDeviceRegistry:
    def __init__(
        self,
        adb: DeviceControlChannel,
        *,
        settle_seconds: float = KILL_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adb = adb
        self._settle_seconds = settle_seconds
        self._sleep = sleep

    def start_server(self) -> None:
        result = self._adb.execute(["start-server"])
        if not result.ok:
            console.warning(f"Unable to start adb server: {result.describe()}")

    def list_devices(self) -> List[DeviceHandle]:
        result = self._adb.execute(["devices", "-l"])
        if not result.ok:
            console.warning(f"Unable to list adb devices: {result.describe()}")
            return []
        return parse_adb_devices(result.stdout)

    def kill(self, handle: DeviceHandle) -> bool:
        result = self._adb.execute(["emu", "kill"], handle.serial)
        if not result.ok:
            console.warning(f"Failed to kill {handle.serial}: {result.describe()}")
        self._sleep(self._settle_seconds)
        return result.ok

    def kill_all(self, handles: Iterable[DeviceHandle]) -> None:
        handles = list(handles)
        for handle in handles:
            console.info(f"Killing device {handle.serial}")
            self.kill(handle)
        if handles:
            self._sleep(self._settle_seconds)


class SimulatorRegistry:
    """Registry view over ``simctl``; only non-shutdown simulators count as running."""

    def __init__(
        self,
        simctl: DeviceControlChannel,
        *,
        settle_seconds: float = KILL_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._simctl = simctl
        self._settle_seconds = settle_seconds
        self._sleep = sleep

    def start_server(self) -> None:
        """Nothing to start: simctl reaches CoreSimulatorService on demand."""

    def list_all(self) -> List[DeviceHandle]:
        result = self._simctl.execute(["list", "devices"])
        if not result.ok:
            console.warning(f"Unable to list simulators: {result.describe()}")
            return []
        return parse_simctl_devices(result.stdout)

    def list_devices(self) -> List[DeviceHandle]:
        return [
            handle
            for handle in self.list_all()
            if handle.boot_state not in (BootState.SHUTDOWN, BootState.UNKNOWN)
        ]

    def find_by_name(self, name: str) -> Optional[DeviceHandle]:
        for handle in self.list_all():
            if handle.name == name:
                return handle
        return None

    def kill(self, handle: DeviceHandle) -> bool:
        result = self._simctl.execute(["shutdown", handle.serial])
        if not result.ok:
            console.warning(f"Failed to shut down {handle.serial}: {result.describe()}")
        self._sleep(self._settle_seconds)
        return result.ok

    def kill_all(self, handles: Iterable[DeviceHandle]) -> None:
        handles = list(handles)
        for handle in handles:
            console.info(f"Shutting down simulator {handle.name or handle.serial}")
            self.kill(handle)
        if handles:
            self._sleep(self._settle_seconds)
