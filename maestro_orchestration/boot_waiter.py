"""Poll a launched device until it reports boot completion.

Each poll reads the boot-completion sentinel. ``"1"`` ends the wait. Any
other response consumes one attempt; empty, offline and unauthorized
responses also emit a warning but never abort the wait early. Between polls
the waiter sleeps ``min(1 + 2**attempt, 30)`` seconds.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from maestro_orchestration import console
from maestro_orchestration.control_channel import DeviceControlChannel
from maestro_orchestration.registry import BootState, parse_simctl_devices

BOOT_COMPLETED = "1"
MAX_BACKOFF_SECONDS = 30
DEVICE_ISSUE_MARKERS = ("device offline", "device unauthorized", "offline", "unauthorized")


class BootOutcome(str, Enum):
    PENDING = "pending"
    BOOTED = "booted"
    TIMED_OUT = "timed_out"
    DEVICE_ERROR = "device_error"


@dataclass(frozen=True)
class BootAttempt:
    attempt_number: int
    wait_seconds: int
    outcome: BootOutcome
    response: str = ""


@dataclass
class BootResult:
    serial: str
    outcome: BootOutcome = BootOutcome.PENDING
    attempts: List[BootAttempt] = field(default_factory=list)
    detail: Optional[str] = None

    @property
    def booted(self) -> bool:
        return self.outcome is BootOutcome.BOOTED

    @property
    def total_wait_seconds(self) -> int:
        return sum(attempt.wait_seconds for attempt in self.attempts)


def backoff_seconds(attempt: int) -> int:
    return min(1 + 2**attempt, MAX_BACKOFF_SECONDS)


def is_device_issue(response: str) -> bool:
    if not response:
        return True
    lowered = response.lower()
    return any(marker in lowered for marker in DEVICE_ISSUE_MARKERS)


class AndroidBootProbe:
    def __init__(self, adb: DeviceControlChannel) -> None:
        self._adb = adb

    def __call__(self, serial: str) -> str:
        result = self._adb.execute(["shell", "getprop", "sys.boot_completed"], serial)
        if result.ok:
            return result.stdout.strip()
        return result.stderr.strip() or result.stdout.strip()


class SimulatorBootProbe:
    """Reports ``"1"`` once the simulator is listed as Booted, else its state label."""

    def __init__(self, simctl: DeviceControlChannel) -> None:
        self._simctl = simctl

    def __call__(self, udid: str) -> str:
        result = self._simctl.execute(["list", "devices"])
        if not result.ok:
            return result.stderr.strip()
        for handle in parse_simctl_devices(result.stdout):
            if handle.serial == udid:
                if handle.boot_state is BootState.BOOTED:
                    return BOOT_COMPLETED
                return handle.boot_state.value
        return ""


class BootWaiter:
    def __init__(
        self,
        probe: Callable[[str], str],
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._probe = probe
        self._sleep = sleep

    def wait_for_boot(self, serial: str, max_attempts: int) -> BootResult:
        result = BootResult(serial=serial)
        attempts = max(1, max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                response = self._probe(serial).strip()
            except OSError as error:
                console.warning(f"Boot probe for {serial} failed: {error}")
                result.attempts.append(
                    BootAttempt(attempt, 0, BootOutcome.DEVICE_ERROR, str(error))
                )
                result.outcome = BootOutcome.DEVICE_ERROR
                result.detail = str(error)
                return result

            console.info(f"Boot probe response for {serial}: {response!r}")
            if response == BOOT_COMPLETED:
                result.attempts.append(BootAttempt(attempt, 0, BootOutcome.BOOTED, response))
                result.outcome = BootOutcome.BOOTED
                console.info(f"Device {serial} is booted.")
                return result

            if is_device_issue(response):
                console.warning(f"Device issue detected for {serial}: {response!r}")

            if attempt >= attempts:
                result.attempts.append(BootAttempt(attempt, 0, BootOutcome.TIMED_OUT, response))
                result.outcome = BootOutcome.TIMED_OUT
                result.detail = f"no boot completion after {attempt} polls"
                return result

            wait = backoff_seconds(attempt)
            result.attempts.append(BootAttempt(attempt, wait, BootOutcome.PENDING, response))
            console.info(f"Retrying... Attempt {attempt}/{attempts}; waiting {wait} seconds")
            self._sleep(wait)
        return result
