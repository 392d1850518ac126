import stat
import subprocess
from pathlib import Path

import pytest

from maestro_orchestration.control_channel import (
    DeviceControlChannel,
    format_command,
    resolve_sdk_root,
    resolve_tool,
)
from maestro_orchestration.errors import ConfigurationError


def _make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def test_resolve_sdk_root_prefers_android_home() -> None:
    env = {"ANDROID_HOME": "/opt/sdk", "ANDROID_SDK_ROOT": "/other"}
    assert resolve_sdk_root(env) == Path("/opt/sdk")
    assert resolve_sdk_root({"ANDROID_SDK_ROOT": "/other"}) == Path("/other")
    assert resolve_sdk_root({}) is None


def test_resolve_tool_uses_sdk_layout(tmp_path: Path) -> None:
    adb = _make_executable(tmp_path / "platform-tools" / "adb")
    avdmanager = _make_executable(tmp_path / "cmdline-tools" / "12.0" / "bin" / "avdmanager")
    emulator = _make_executable(tmp_path / "emulator" / "emulator")

    assert resolve_tool("adb", sdk_root=tmp_path) == adb
    assert resolve_tool("avdmanager", sdk_root=tmp_path) == avdmanager
    assert resolve_tool("emulator", sdk_root=tmp_path) == emulator


def test_resolve_tool_rejects_non_executable_explicit_path(tmp_path: Path) -> None:
    missing = tmp_path / "adb"
    with pytest.raises(ConfigurationError, match="not executable"):
        resolve_tool("adb", explicit_path=str(missing))


def test_resolve_tool_fails_fast_when_nothing_found(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    with pytest.raises(ConfigurationError, match="Unable to locate the avdmanager binary"):
        resolve_tool("avdmanager", sdk_root=tmp_path)


def test_execute_passes_argument_vector_without_shell(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    adb = _make_executable(tmp_path / "platform-tools" / "adb")
    captured = {}

    def fake_run(command, **kwargs):
        captured["command"] = command
        captured["kwargs"] = kwargs
        return subprocess.CompletedProcess(command, 0, stdout="1\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    channel = DeviceControlChannel("adb", sdk_root=tmp_path)

    result = channel.execute(["shell", "getprop", "my prop"], "emulator-5554")

    assert captured["command"] == [
        str(adb),
        "-s",
        "emulator-5554",
        "shell",
        "getprop",
        "my prop",
    ]
    assert "shell" not in captured["kwargs"]
    assert result.ok
    assert result.stdout == "1\n"


def test_execute_reports_timeout_as_exit_code(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _make_executable(tmp_path / "platform-tools" / "adb")

    def fake_run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, 5)

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = DeviceControlChannel("adb", sdk_root=tmp_path).execute(["devices"])

    assert result.exit_code == 124
    assert "timed out" in result.describe()


def test_format_command_quotes_spaces() -> None:
    assert format_command(["avdmanager", "-n", "My Device"]) == "avdmanager -n 'My Device'"
