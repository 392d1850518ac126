"""Drive one device through teardown, provisioning, boot, install, test and teardown.

The orchestrator owns exactly one device handle per run: the handle returned
by its own launch step. Collaborators are injected so the state machine can
be exercised with fakes:

``registry``
    ``start_server()``, ``list_devices()``, ``kill(handle) -> bool`` and
    ``kill_all(handles)``.
``provisioner``
    ``create(spec)``, ``delete(name)`` and ``exists(name)``.
``launcher``
    ``launch(spec) -> DeviceHandle`` and ``terminate(handle) -> bool``, the
    fallback used when the registry cannot kill a launched device.
``boot_waiter``
    ``wait_for_boot(serial, max_attempts) -> BootResult``.
``configurator``
    ``enter_demo_mode(serial)``, ``exit_demo_mode(serial)`` and
    ``set_location(serial, location)``, each returning failure messages.
``installer``
    ``install(serial, artifact)``.
``flow_runner``
    ``run(flow_path, device) -> int``.

Running two orchestrations against the same image name at the same time is
undefined behaviour.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from maestro_orchestration import console
from maestro_orchestration.artifacts import find_artifact, run_build
from maestro_orchestration.boot_waiter import BootResult
from maestro_orchestration.config import OrchestratorConfig
from maestro_orchestration.errors import (
    BootTimeoutError,
    OrchestrationError,
    TeardownWarning,
    TestExecutionFailure,
)
from maestro_orchestration.registry import DeviceHandle
from maestro_orchestration.scripts.clean_logs import clean_logs


class LifecycleState(str, Enum):
    IDLE = "idle"
    CLEANING = "cleaning"
    PROVISIONING = "provisioning"
    LAUNCHING = "launching"
    AWAITING_BOOT = "awaiting_boot"
    BOOT_FAILED = "boot_failed"
    CONFIGURING = "configuring"
    INSTALLING = "installing"
    TESTING = "testing"
    TEARING_DOWN = "tearing_down"
    DONE = "done"
    FATAL_FAILURE = "fatal_failure"


@dataclass
class LifecycleComponents:
    registry: Any
    provisioner: Any
    launcher: Any
    boot_waiter: Any
    configurator: Any
    installer: Any
    flow_runner: Any


@dataclass
class RunResult:
    state: LifecycleState = LifecycleState.IDLE
    device: Optional[DeviceHandle] = None
    artifact: Optional[Path] = None
    test_exit_code: Optional[int] = None
    boot_results: List[BootResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    teardown_warnings: List[TeardownWarning] = field(default_factory=list)
    history: List[LifecycleState] = field(default_factory=lambda: [LifecycleState.IDLE])
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.state is LifecycleState.DONE and self.test_exit_code == 0

    @property
    def boot_cycles(self) -> int:
        return len(self.boot_results)

    def raise_for_status(self) -> None:
        if self.test_exit_code:
            raise TestExecutionFailure(self.test_exit_code)


class LifecycleOrchestrator:
    def __init__(
        self,
        config: OrchestratorConfig,
        components: LifecycleComponents,
        *,
        locate_artifact: Callable[..., Path] = find_artifact,
        build: Callable[[Sequence[str]], None] = run_build,
        remove_logs: Callable[[], bool] = clean_logs,
    ) -> None:
        self.config = config
        self.components = components
        self._locate_artifact = locate_artifact
        self._build = build
        self._remove_logs = remove_logs
        self._active: Optional[DeviceHandle] = None
        self._image_provisioned = False
        self._demo_mode_entered = False
        self.result = RunResult()

    @property
    def state(self) -> LifecycleState:
        return self.result.state

    @property
    def active_device(self) -> Optional[DeviceHandle]:
        return self._active

    def _transition(self, state: LifecycleState) -> None:
        self.result.state = state
        self.result.history.append(state)

    def run(self) -> RunResult:
        """Execute the full lifecycle once.

        A failed flow run is reported through :attr:`RunResult.test_exit_code`.
        Fatal errors are re-raised after a best-effort teardown.
        """

        if self.result.history != [LifecycleState.IDLE]:
            raise OrchestrationError("A LifecycleOrchestrator instance can only run once")
        self.config.validate()
        try:
            self._clean()
            handle = self._provision_and_boot()
            self._configure(handle)
            self._install(handle)
            self._test(handle)
        except BaseException as error:
            self.result.error = str(error) or type(error).__name__
            self._teardown(delete_image=True)
            self._transition(LifecycleState.FATAL_FAILURE)
            raise
        self._teardown(delete_image=False)
        self._transition(LifecycleState.DONE)
        return self.result

    def _clean(self) -> None:
        self._transition(LifecycleState.CLEANING)
        registry = self.components.registry
        registry.start_server()
        stale = registry.list_devices()
        if stale:
            console.info(f"Killing {len(stale)} running device(s) before provisioning")
        registry.kill_all(stale)

    def _provision_and_boot(self) -> DeviceHandle:
        spec = self.config.device
        budget = self.config.budget
        recreated = 0
        while True:
            self._transition(LifecycleState.PROVISIONING)
            self.components.provisioner.create(spec)
            self._image_provisioned = True

            self._transition(LifecycleState.LAUNCHING)
            handle = self.components.launcher.launch(spec)
            self._active = handle
            self.result.device = handle

            self._transition(LifecycleState.AWAITING_BOOT)
            boot = self.components.boot_waiter.wait_for_boot(
                handle.serial, budget.max_poll_attempts
            )
            self.result.boot_results.append(boot)
            if boot.booted:
                return handle

            self._transition(LifecycleState.BOOT_FAILED)
            if recreated >= budget.max_boot_retries:
                raise BootTimeoutError(
                    f"Device {spec.name} ({handle.serial}) failed to boot after "
                    f"{recreated + 1} attempt(s): {boot.detail or boot.outcome.value}"
                )
            recreated += 1
            console.warning(
                f"Device {handle.serial} did not boot ({boot.outcome.value}); recreating "
                f"{spec.name} (retry {recreated}/{budget.max_boot_retries})"
            )
            self._stop_device(handle)
            self._active = None
            self.components.provisioner.delete(spec.name)
            self._image_provisioned = False

    def _configure(self, handle: DeviceHandle) -> None:
        self._transition(LifecycleState.CONFIGURING)
        configurator = self.components.configurator
        self._demo_mode_entered = True
        self.result.warnings.extend(configurator.enter_demo_mode(handle.serial))
        if self.config.location is not None:
            self.result.warnings.extend(
                configurator.set_location(handle.serial, self.config.location)
            )

    def _install(self, handle: DeviceHandle) -> None:
        self._transition(LifecycleState.INSTALLING)
        if self.config.build_command:
            self._build(self.config.build_command)
        artifact = self._locate_artifact(
            self.config.resolved_artifact_dir,
            self.config.resolved_artifact_pattern,
            selection=self.config.artifact_selection,
        )
        self.result.artifact = artifact
        self.components.installer.install(handle.serial, artifact)

    def _test(self, handle: DeviceHandle) -> None:
        if self.config.clear_logs:
            try:
                self._remove_logs()
            except OSError as error:
                self._record_teardown_warning(f"Unable to clear previous Maestro logs: {error}")
        self._transition(LifecycleState.TESTING)
        self.result.test_exit_code = self.components.flow_runner.run(
            self.config.flow_path, handle.serial
        )

    def _record_teardown_warning(self, message: str) -> None:
        console.warning(message)
        self.result.teardown_warnings.append(TeardownWarning(message))

    def _stop_device(self, handle: DeviceHandle) -> bool:
        """Kill through the registry, then fall back to the launched process."""

        try:
            if self.components.registry.kill(handle):
                return True
        except (OrchestrationError, OSError) as error:
            self._record_teardown_warning(f"Unable to kill {handle.serial}: {error}")
        try:
            return bool(self.components.launcher.terminate(handle))
        except OSError as error:
            self._record_teardown_warning(f"Unable to terminate {handle.serial}: {error}")
            return False

    def _teardown(self, *, delete_image: bool) -> None:
        self._transition(LifecycleState.TEARING_DOWN)
        handle = self._active
        if handle is not None:
            if self._demo_mode_entered:
                try:
                    for failure in self.components.configurator.exit_demo_mode(handle.serial):
                        self.result.teardown_warnings.append(TeardownWarning(failure))
                except (OrchestrationError, OSError) as error:
                    self._record_teardown_warning(f"Unable to exit demo mode: {error}")
            if not self._stop_device(handle):
                self.result.teardown_warnings.append(
                    TeardownWarning(f"Failed to kill {handle.serial}")
                )
            self._active = None
        if delete_image and self._image_provisioned:
            try:
                self.components.provisioner.delete(self.config.device.name)
                self._image_provisioned = False
            except (OrchestrationError, OSError) as error:
                self._record_teardown_warning(
                    f"Unable to delete image {self.config.device.name}: {error}"
                )
