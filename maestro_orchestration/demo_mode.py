"""Deterministic cosmetic device state for reproducible screenshots.

Failures are reported as warnings; nothing here aborts a run.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from maestro_orchestration import console
from maestro_orchestration.control_channel import DeviceControlChannel

DEMO_BROADCAST = ["shell", "am", "broadcast", "-a", "com.android.systemui.demo", "-e", "command"]
DEMO_CLOCK = "1200"
DEMO_BATTERY_LEVEL = "100"
DEMO_SIGNAL_LEVEL = "4"

ANDROID_DEMO_COMMANDS: List[List[str]] = [
    ["shell", "settings", "put", "global", "sysui_demo_allowed", "1"],
    [*DEMO_BROADCAST, "enter"],
    [*DEMO_BROADCAST, "clock", "-e", "hhmm", DEMO_CLOCK],
    [*DEMO_BROADCAST, "battery", "-e", "level", DEMO_BATTERY_LEVEL, "-e", "plugged", "false"],
    [*DEMO_BROADCAST, "network", "-e", "wifi", "show", "-e", "level", DEMO_SIGNAL_LEVEL],
    [
        *DEMO_BROADCAST,
        "network",
        "-e",
        "mobile",
        "show",
        "-e",
        "datatype",
        "none",
        "-e",
        "level",
        DEMO_SIGNAL_LEVEL,
    ],
    [*DEMO_BROADCAST, "notifications", "-e", "visible", "false"],
]
ANDROID_EXIT_COMMANDS: List[List[str]] = [
    [*DEMO_BROADCAST, "exit"],
    ["shell", "settings", "put", "global", "sysui_demo_allowed", "0"],
]

SIMULATOR_STATUS_BAR = [
    "--time",
    "9:41",
    "--dataNetwork",
    "wifi",
    "--wifiMode",
    "active",
    "--wifiBars",
    "3",
    "--cellularMode",
    "active",
    "--cellularBars",
    "4",
    "--batteryState",
    "charged",
    "--batteryLevel",
    "100",
]


def _run_all(
    channel: DeviceControlChannel,
    commands: Sequence[Sequence[str]],
    serial: Optional[str],
    label: str,
) -> List[str]:
    failures: List[str] = []
    for command in commands:
        try:
            result = channel.execute(list(command), serial)
        except OSError as error:
            failures.append(f"{label}: {error}")
            continue
        if not result.ok:
            failures.append(f"{label}: {result.describe()}")
    for failure in failures:
        console.warning(failure)
    return failures


class AndroidDeviceConfigurator:
    def __init__(self, adb: DeviceControlChannel) -> None:
        self._adb = adb

    def enter_demo_mode(self, serial: str) -> List[str]:
        console.info(f"Enabling System UI demo mode on {serial}")
        return _run_all(self._adb, ANDROID_DEMO_COMMANDS, serial, "Demo mode")

    def exit_demo_mode(self, serial: str) -> List[str]:
        return _run_all(self._adb, ANDROID_EXIT_COMMANDS, serial, "Exit demo mode")

    def set_location(self, serial: str, location: Tuple[float, float]) -> List[str]:
        latitude, longitude = location
        console.info(f"Setting location of {serial} to {latitude},{longitude}")
        # geo fix takes longitude first.
        command = ["emu", "geo", "fix", str(longitude), str(latitude)]
        return _run_all(self._adb, [command], serial, "Location override")


class SimulatorConfigurator:
    def __init__(self, simctl: DeviceControlChannel) -> None:
        self._simctl = simctl

    def enter_demo_mode(self, udid: str) -> List[str]:
        console.info(f"Overriding status bar on simulator {udid}")
        command = ["status_bar", udid, "override", *SIMULATOR_STATUS_BAR]
        return _run_all(self._simctl, [command], None, "Status bar override")

    def exit_demo_mode(self, udid: str) -> List[str]:
        return _run_all(self._simctl, [["status_bar", udid, "clear"]], None, "Clear status bar")

    def set_location(self, udid: str, location: Tuple[float, float]) -> List[str]:
        latitude, longitude = location
        console.info(f"Setting location of {udid} to {latitude},{longitude}")
        command = ["location", udid, "set", f"{latitude},{longitude}"]
        return _run_all(self._simctl, [command], None, "Location override")
