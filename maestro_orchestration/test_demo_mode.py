from maestro_orchestration.control_channel import CommandResult
from maestro_orchestration.demo_mode import (
    ANDROID_DEMO_COMMANDS,
    AndroidDeviceConfigurator,
    SimulatorConfigurator,
)


class FakeChannel:
    def __init__(self, failing_word: str = ""):
        self.failing_word = failing_word
        self.calls = []

    def execute(self, args, serial=None, **kwargs):
        args = list(args)
        self.calls.append((args, serial))
        code = 1 if self.failing_word and self.failing_word in args else 0
        return CommandResult(command=args, stdout="", exit_code=code)


def test_android_demo_mode_issues_every_override() -> None:
    adb = FakeChannel()

    failures = AndroidDeviceConfigurator(adb).enter_demo_mode("emulator-5554")

    assert failures == []
    assert [args for args, _ in adb.calls] == ANDROID_DEMO_COMMANDS
    assert {serial for _, serial in adb.calls} == {"emulator-5554"}


def test_android_demo_failures_are_returned_not_raised() -> None:
    adb = FakeChannel(failing_word="battery")

    failures = AndroidDeviceConfigurator(adb).enter_demo_mode("emulator-5554")

    assert len(failures) == 1
    assert "Demo mode" in failures[0]
    assert len(adb.calls) == len(ANDROID_DEMO_COMMANDS)


def test_android_location_uses_longitude_first() -> None:
    adb = FakeChannel()
    AndroidDeviceConfigurator(adb).set_location("emulator-5554", (52.52, 13.405))
    assert adb.calls == [(["emu", "geo", "fix", "13.405", "52.52"], "emulator-5554")]


def test_simulator_status_bar_override_and_clear() -> None:
    simctl = FakeChannel()
    configurator = SimulatorConfigurator(simctl)

    configurator.enter_demo_mode("UDID")
    configurator.exit_demo_mode("UDID")

    override, clear = simctl.calls
    assert override[0][:3] == ["status_bar", "UDID", "override"]
    assert "--batteryLevel" in override[0]
    assert clear == (["status_bar", "UDID", "clear"], None)
