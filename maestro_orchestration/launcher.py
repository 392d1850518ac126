"""Start device processes without waiting for them to become ready.

Readiness is established only by :mod:`maestro_orchestration.boot_waiter`.
"""
from __future__ import annotations

import subprocess
from typing import Dict, List

from maestro_orchestration import console
from maestro_orchestration.config import DEFAULT_PORT, DeviceSpec
from maestro_orchestration.control_channel import DeviceControlChannel
from maestro_orchestration.errors import ConfigurationError, ProvisioningError
from maestro_orchestration.registry import BootState, DeviceHandle, SimulatorRegistry

ACCELERATION_FLAGS = ["-wipe-data", "-no-boot-anim", "-no-snapshot", "-no-audio"]
TERMINATE_TIMEOUT_SECONDS = 10.0


def build_emulator_args(spec: DeviceSpec) -> List[str]:
    if not spec.name:
        raise ConfigurationError("Emulator name is required")
    port = spec.port if spec.port is not None else DEFAULT_PORT
    return ["-avd", spec.name, "-port", str(port), *ACCELERATION_FLAGS]


class EmulatorLauncher:
    def __init__(
        self,
        emulator: DeviceControlChannel,
        *,
        terminate_timeout: float = TERMINATE_TIMEOUT_SECONDS,
    ) -> None:
        self._emulator = emulator
        self._terminate_timeout = terminate_timeout
        self._processes: Dict[str, subprocess.Popen] = {}

    def launch(self, spec: DeviceSpec) -> DeviceHandle:
        args = build_emulator_args(spec)
        port = int(args[3])
        console.info(f"Starting emulator {spec.name} on port {port}...")
        try:
            process = self._emulator.spawn_detached(args)
        except OSError as error:
            raise ProvisioningError(f"Unable to start emulator {spec.name}: {error}") from error
        serial = f"emulator-{port}"
        self._processes[serial] = process
        return DeviceHandle(
            serial=serial,
            port=port,
            boot_state=BootState.BOOTING,
            name=spec.name,
        )

    def terminate(self, handle: DeviceHandle) -> bool:
        """Stop the emulator process started for ``handle``.

        Returns False when this launcher holds no live process for the serial.
        """

        process = self._processes.pop(handle.serial, None)
        if process is None or process.poll() is not None:
            return False
        console.warning(f"Terminating emulator process for {handle.serial}")
        process.terminate()
        try:
            process.wait(timeout=self._terminate_timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        return True


class SimulatorLauncher:
    def __init__(self, simctl: DeviceControlChannel, registry: SimulatorRegistry) -> None:
        self._simctl = simctl
        self._registry = registry

    def launch(self, spec: DeviceSpec) -> DeviceHandle:
        simulator = self._registry.find_by_name(spec.name)
        if simulator is None:
            raise ProvisioningError(f"Simulator '{spec.name}' not found.")
        console.info(f"Booting simulator {spec.name} ({simulator.serial})...")
        result = self._simctl.execute(["boot", simulator.serial])
        already_booted = any(
            marker in result.stderr.lower() for marker in ("already booted", "current state: booted")
        )
        if not result.ok and not already_booted:
            raise ProvisioningError(f"Unable to boot simulator {spec.name}: {result.describe()}")
        return DeviceHandle(
            serial=simulator.serial,
            boot_state=BootState.BOOTING,
            name=spec.name,
        )

    def terminate(self, handle: DeviceHandle) -> bool:
        # Simulators run inside CoreSimulatorService; there is no child process to stop.
        return False
