"""Create and delete device images (AVDs or simulator profiles).

``create`` always removes an existing image of the same name first so a
previous run's state never leaks into the next one.

``exists`` checks whether the image name occurs anywhere in the tool's list
output. Names that are prefixes of other image names therefore report true
when only the longer name exists; callers should pick distinctive names.
"""
from __future__ import annotations

import re
from typing import Optional

from maestro_orchestration import console
from maestro_orchestration.config import DeviceSpec
from maestro_orchestration.control_channel import DeviceControlChannel
from maestro_orchestration.errors import ConfigurationError, ProvisioningError
from maestro_orchestration.registry import parse_simctl_devices

AVD_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
SIMULATOR_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._ ()-]+$")


def _require(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise ConfigurationError(f"{label} is required")
    return value


class AvdProvisioner:
    def __init__(self, avdmanager: DeviceControlChannel) -> None:
        self._avdmanager = avdmanager

    @staticmethod
    def _validate_name(name: Optional[str]) -> str:
        name = _require(name, "AVD name")
        if not AVD_NAME_PATTERN.match(name):
            raise ConfigurationError(
                f"AVD name may only contain letters, digits, '.', '_' and '-': {name!r}"
            )
        return name

    def exists(self, name: str) -> bool:
        result = self._avdmanager.execute(["list", "avd"])
        if not result.ok:
            raise ProvisioningError(f"Unable to list AVDs: {result.describe()}")
        return name in result.stdout

    def delete(self, name: str) -> None:
        name = self._validate_name(name)
        console.info(f"Deleting AVD {name}")
        result = self._avdmanager.execute(["delete", "avd", "-n", name])
        if not result.ok:
            raise ProvisioningError(f"Failed to delete AVD {name}: {result.describe()}")

    def create(self, spec: DeviceSpec) -> None:
        name = self._validate_name(spec.name)
        package = _require(spec.system_image, "System image package")
        if self.exists(name):
            self.delete(name)
        console.info(f"Creating AVD {name} from {package} ({spec.hardware_profile})")
        result = self._avdmanager.execute(
            ["create", "avd", "-n", name, "-f", "-k", package, "-d", spec.hardware_profile],
            input_text="no\n",
        )
        if not result.ok:
            raise ProvisioningError(f"Failed to create AVD {name}: {result.describe()}")


class SimulatorProvisioner:
    def __init__(self, simctl: DeviceControlChannel) -> None:
        self._simctl = simctl

    @staticmethod
    def _validate_name(name: Optional[str]) -> str:
        name = _require(name, "Simulator name")
        if not SIMULATOR_NAME_PATTERN.match(name):
            raise ConfigurationError(f"Unsupported characters in simulator name: {name!r}")
        return name

    def exists(self, name: str) -> bool:
        result = self._simctl.execute(["list", "devices"])
        if not result.ok:
            raise ProvisioningError(f"Unable to list simulators: {result.describe()}")
        return name in result.stdout

    def delete(self, name: str) -> None:
        name = self._validate_name(name)
        result = self._simctl.execute(["list", "devices"])
        if not result.ok:
            raise ProvisioningError(f"Unable to list simulators: {result.describe()}")
        # simctl refuses to delete by name when several simulators share it.
        matches = [handle for handle in parse_simctl_devices(result.stdout) if handle.name == name]
        targets = [handle.serial for handle in matches] or [name]
        for target in targets:
            console.info(f"Deleting simulator {name} ({target})")
            deleted = self._simctl.execute(["delete", target])
            if not deleted.ok:
                raise ProvisioningError(f"Failed to delete simulator {name}: {deleted.describe()}")

    def create(self, spec: DeviceSpec) -> None:
        name = self._validate_name(spec.name)
        runtime = _require(spec.system_image, "Simulator runtime")
        device_type = _require(spec.hardware_profile, "Simulator device type")
        if self.exists(name):
            self.delete(name)
        console.info(f"Creating simulator {name} ({device_type}, {runtime})")
        result = self._simctl.execute(["create", name, device_type, runtime])
        if not result.ok:
            raise ProvisioningError(f"Failed to create simulator {name}: {result.describe()}")
