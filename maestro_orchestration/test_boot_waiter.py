from typing import List

import pytest

from maestro_orchestration.boot_waiter import (
    AndroidBootProbe,
    BootOutcome,
    BootWaiter,
    SimulatorBootProbe,
    backoff_seconds,
    is_device_issue,
)
from maestro_orchestration.control_channel import CommandResult


class ScriptedProbe:
    def __init__(self, responses: List[str]):
        self._responses = list(responses)
        self.calls: List[str] = []

    def __call__(self, serial: str) -> str:
        self.calls.append(serial)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


class RecordingSleep:
    def __init__(self) -> None:
        self.waits: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def test_backoff_sequence_is_capped() -> None:
    assert [backoff_seconds(attempt) for attempt in range(1, 6)] == [3, 5, 9, 17, 30]
    assert backoff_seconds(10) == 30


def test_booted_on_second_poll_sleeps_once() -> None:
    probe = ScriptedProbe(["0", "1"])
    sleep = RecordingSleep()

    result = BootWaiter(probe, sleep=sleep).wait_for_boot("emulator-5554", 3)

    assert result.outcome is BootOutcome.BOOTED
    assert result.booted
    assert probe.calls == ["emulator-5554", "emulator-5554"]
    assert sleep.waits == [3]
    assert [attempt.outcome for attempt in result.attempts] == [
        BootOutcome.PENDING,
        BootOutcome.BOOTED,
    ]


def test_times_out_after_max_attempts_without_trailing_sleep() -> None:
    probe = ScriptedProbe(["0"])
    sleep = RecordingSleep()

    result = BootWaiter(probe, sleep=sleep).wait_for_boot("emulator-5554", 3)

    assert result.outcome is BootOutcome.TIMED_OUT
    assert len(probe.calls) == 3
    assert sleep.waits == [3, 5]
    assert result.total_wait_seconds == 8
    assert result.attempts[-1].attempt_number == 3


def test_offline_responses_warn_and_keep_polling(capsys: pytest.CaptureFixture[str]) -> None:
    probe = ScriptedProbe(["", "error: device offline", "1"])
    sleep = RecordingSleep()

    result = BootWaiter(probe, sleep=sleep).wait_for_boot("emulator-5556", 5)

    assert result.booted
    assert sleep.waits == [3, 5]
    captured = capsys.readouterr()
    assert captured.err.count("Device issue detected") == 2


def test_probe_oserror_reports_device_error() -> None:
    def broken_probe(serial: str) -> str:
        raise FileNotFoundError("adb")

    sleep = RecordingSleep()
    result = BootWaiter(broken_probe, sleep=sleep).wait_for_boot("emulator-5554", 4)

    assert result.outcome is BootOutcome.DEVICE_ERROR
    assert sleep.waits == []


def test_is_device_issue() -> None:
    assert is_device_issue("")
    assert is_device_issue("error: device unauthorized.")
    assert not is_device_issue("0")


class FakeChannel:
    def __init__(self, result: CommandResult):
        self.result = result
        self.calls = []

    def execute(self, args, serial=None, **kwargs):
        self.calls.append((list(args), serial))
        return self.result


def test_android_probe_targets_serial_and_surfaces_errors() -> None:
    channel = FakeChannel(
        CommandResult(command=["adb"], stdout="", exit_code=1, stderr="error: device offline\n")
    )
    assert AndroidBootProbe(channel)("emulator-5554") == "error: device offline"
    assert channel.calls == [(["shell", "getprop", "sys.boot_completed"], "emulator-5554")]


def test_simulator_probe_maps_booted_state_to_sentinel() -> None:
    listing = """
== Devices ==
-- iOS 17.2 --
    Maestro iPhone (0C2A1A3E-4B1F-4F7E-9B0D-1234567890AB) (Booted)
    Other (11111111-2222-3333-4444-555555555555) (Shutdown)
"""
    channel = FakeChannel(CommandResult(command=["xcrun"], stdout=listing, exit_code=0))
    probe = SimulatorBootProbe(channel)

    assert probe("0C2A1A3E-4B1F-4F7E-9B0D-1234567890AB") == "1"
    assert probe("11111111-2222-3333-4444-555555555555") == "shutdown"
    assert probe("99999999-2222-3333-4444-555555555555") == ""
