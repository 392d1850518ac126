import os
from pathlib import Path

import pytest

from maestro_orchestration.artifacts import ApkInstaller, find_artifact, run_build
from maestro_orchestration.control_channel import CommandResult
from maestro_orchestration.errors import ArtifactNotFoundError, InstallationError


def test_single_match_is_returned(tmp_path: Path) -> None:
    apk = tmp_path / "app-debug.apk"
    apk.write_bytes(b"apk")
    (tmp_path / "output-metadata.json").write_text("{}", encoding="utf-8")

    assert find_artifact(tmp_path, "*.apk") == apk


def test_zero_matches_raise(tmp_path: Path) -> None:
    with pytest.raises(ArtifactNotFoundError, match="no file matching"):
        find_artifact(tmp_path, "*.apk")


def test_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(ArtifactNotFoundError, match="directory not found"):
        find_artifact(tmp_path / "missing", "*.apk")


def test_multiple_matches_use_first_by_name_and_warn(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    for name in ("b-debug.apk", "a-debug.apk"):
        (tmp_path / name).write_bytes(b"apk")

    assert find_artifact(tmp_path, "*.apk") == tmp_path / "a-debug.apk"
    assert "ignoring b-debug.apk" in capsys.readouterr().err


def test_newest_policy_uses_modification_time(tmp_path: Path) -> None:
    older = tmp_path / "a-debug.apk"
    newer = tmp_path / "b-debug.apk"
    older.write_bytes(b"old")
    newer.write_bytes(b"new")
    os.utime(older, (1_000, 1_000))
    os.utime(newer, (2_000, 2_000))

    assert find_artifact(tmp_path, "*.apk", selection="newest") == newer


def test_run_build_failure_is_reported_as_missing_artifact() -> None:
    with pytest.raises(ArtifactNotFoundError):
        run_build(["definitely-not-a-real-build-tool-xyz"])


class FakeAdb:
    def __init__(self, result: CommandResult):
        self.result = result
        self.calls = []

    def execute(self, args, serial=None, **kwargs):
        self.calls.append((list(args), serial))
        return self.result


def test_apk_install_targets_serial(tmp_path: Path) -> None:
    adb = FakeAdb(CommandResult(command=["adb"], stdout="Success\n", exit_code=0))
    apk = tmp_path / "app-debug.apk"

    ApkInstaller(adb).install("emulator-5554", apk)

    assert adb.calls == [(["install", "-r", str(apk)], "emulator-5554")]


def test_apk_install_failure_in_stdout_raises(tmp_path: Path) -> None:
    adb = FakeAdb(
        CommandResult(
            command=["adb"], stdout="Failure [INSTALL_FAILED_INSUFFICIENT_STORAGE]\n", exit_code=0
        )
    )
    with pytest.raises(InstallationError):
        ApkInstaller(adb).install("emulator-5554", tmp_path / "app-debug.apk")
