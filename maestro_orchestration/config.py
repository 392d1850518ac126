"""Run configuration: option defaults, environment overrides and validation."""

from __future__ import annotations

import argparse
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from maestro_orchestration import console
from maestro_orchestration.errors import ConfigurationError

ENV_FILE_PATH = Path("config") / "maestro-orchestration.env"
PLATFORMS = ("android", "ios")
ARTIFACT_SELECTIONS = ("first", "newest")

# name, system image (or simulator runtime), hardware profile (or device type)
DEFAULT_DEVICES = {
    "android": (
        "Maestro_Pixel_7_API_34",
        "system-images;android-34;google_apis;x86_64",
        "pixel_7_pro",
    ),
    "ios": (
        "Maestro_iPhone_15",
        "com.apple.CoreSimulator.SimRuntime.iOS-17-5",
        "com.apple.CoreSimulator.SimDeviceType.iPhone-15",
    ),
}
DEFAULT_PORT = 5554
DEFAULT_MAX_POLL_ATTEMPTS = 10
DEFAULT_MAX_BOOT_RETRIES = 1
DEFAULT_ARTIFACT_DIRS = {
    "android": "app/build/outputs/apk/debug",
    "ios": "build/Build/Products/Debug-iphonesimulator",
}
DEFAULT_ARTIFACT_PATTERNS = {"android": "*.apk", "ios": "*.app"}
TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class DeviceSpec:
    """Immutable description of the device image a run provisions."""

    name: str
    system_image: str
    hardware_profile: str
    port: Optional[int] = None

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Device image name is required")
        if not self.system_image or not self.system_image.strip():
            raise ConfigurationError("System image package is required")
        if not self.hardware_profile or not self.hardware_profile.strip():
            raise ConfigurationError("Hardware device profile is required")
        if self.port is not None and not (5554 <= self.port <= 5682 and self.port % 2 == 0):
            raise ConfigurationError(
                f"Emulator port must be an even number between 5554 and 5682: {self.port}"
            )


@dataclass(frozen=True)
class RetryBudget:
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    max_boot_retries: int = DEFAULT_MAX_BOOT_RETRIES

    def validate(self) -> None:
        if self.max_poll_attempts < 1:
            raise ConfigurationError("max poll attempts must be at least 1")
        if self.max_boot_retries < 0:
            raise ConfigurationError("max boot retries cannot be negative")


@dataclass
class OrchestratorConfig:
    platform: str
    device: DeviceSpec
    budget: RetryBudget
    flow_path: Path
    sdk_dir: Optional[Path] = None
    control_binary: Optional[str] = None
    location: Optional[Tuple[float, float]] = None
    clear_logs: bool = False
    artifact_dir: Optional[Path] = None
    artifact_pattern: Optional[str] = None
    artifact_selection: str = "first"
    build_command: List[str] = field(default_factory=list)
    maestro_binary: str = "maestro"

    def validate(self) -> None:
        if self.platform not in PLATFORMS:
            raise ConfigurationError(
                f"Unsupported platform: {self.platform}. Please specify 'ios' or 'android'."
            )
        self.device.validate()
        if self.platform == "ios" and self.device.system_image.startswith("system-images;"):
            raise ConfigurationError(
                f"Android system image given for an iOS simulator: {self.device.system_image}"
            )
        self.budget.validate()
        if not str(self.flow_path).strip() or str(self.flow_path) == ".":
            raise ConfigurationError("Maestro flow file path is required")
        if not self.flow_path.exists():
            raise ConfigurationError(f"Maestro flow path does not exist: {self.flow_path}")
        if self.artifact_selection not in ARTIFACT_SELECTIONS:
            raise ConfigurationError(
                f"Unknown artifact selection policy: {self.artifact_selection}"
            )

    @property
    def resolved_artifact_dir(self) -> Path:
        if self.artifact_dir is not None:
            return self.artifact_dir
        return Path(DEFAULT_ARTIFACT_DIRS[self.platform])

    @property
    def resolved_artifact_pattern(self) -> str:
        return self.artifact_pattern or DEFAULT_ARTIFACT_PATTERNS[self.platform]


def read_environment_file(path: Path = ENV_FILE_PATH) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines; blank lines and ``#`` comments are skipped."""

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}
    except OSError as error:
        console.warning(f"Failed to read orchestration environment from {path}: {error}")
        return {}

    values: Dict[str, str] = {}
    for number, line in enumerate(lines, start=1):
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        key, separator, value = entry.partition("=")
        if not separator or not key.strip():
            console.warning(f"{path}:{number}: ignoring malformed entry {entry!r}")
            continue
        values[key.strip()] = value.strip()
    return values


def merged_environment(
    path: Path = ENV_FILE_PATH, base: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Layer the process environment over the environment file.

    The file only supplies defaults; it is never exported to ``os.environ``.
    """

    return {**read_environment_file(path), **(os.environ if base is None else base)}


def parse_bool(value: Optional[str], *, option: str = "value") -> bool:
    if value is None:
        return False
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {option}: {value!r}")


def parse_int(value: Optional[str], *, option: str) -> Optional[int]:
    if value is None or not str(value).strip():
        return None
    try:
        return int(value)
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer for {option}: {value!r}") from error


def parse_location(value: Optional[str]) -> Optional[Tuple[float, float]]:
    """Parse ``"latitude,longitude"``."""

    if value is None or not value.strip():
        return None
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2:
        raise ConfigurationError(f"Location must be 'latitude,longitude': {value!r}")
    try:
        latitude, longitude = float(parts[0]), float(parts[1])
    except ValueError as error:
        raise ConfigurationError(f"Location must be numeric: {value!r}") from error
    if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
        raise ConfigurationError(f"Location is out of range: {value!r}")
    return latitude, longitude


def _env(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    env = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(
        description=(
            "Provision a clean emulator or simulator, boot it, install the app "
            "and run Maestro flows against it."
        )
    )
    parser.add_argument(
        "--platform",
        choices=PLATFORMS,
        default=_env(env, "MAESTRO_ORCHESTRATION_PLATFORM") or "android",
        help="Target platform (default: %(default)s)",
    )
    parser.add_argument(
        "--sdk-dir",
        type=Path,
        default=_env(env, "ANDROID_HOME", "ANDROID_SDK_ROOT"),
        help="Android SDK root (default: $ANDROID_HOME or $ANDROID_SDK_ROOT)",
    )
    parser.add_argument(
        "--control-binary",
        default=_env(env, "MAESTRO_ORCHESTRATION_CONTROL_BINARY"),
        help="Explicit path to adb (android) or xcrun (ios)",
    )
    parser.add_argument(
        "--name",
        default=_env(env, "MAESTRO_EMULATOR_NAME"),
        help="AVD or simulator name to (re)create (default depends on platform)",
    )
    parser.add_argument(
        "--system-image",
        default=_env(env, "MAESTRO_SYSTEM_IMAGE"),
        help="System image package (android) or runtime identifier (ios)",
    )
    parser.add_argument(
        "--device-profile",
        default=_env(env, "MAESTRO_DEVICE_PROFILE"),
        help="Hardware profile (android) or device type (ios)",
    )
    parser.add_argument(
        "--port",
        default=_env(env, "MAESTRO_EMULATOR_PORT") or str(DEFAULT_PORT),
        help="Emulator console port (default: %(default)s)",
    )
    parser.add_argument(
        "--location",
        default=_env(env, "MAESTRO_LOCATION"),
        help="Simulated location as 'latitude,longitude'",
    )
    parser.add_argument(
        "--flows",
        default=_env(env, "MAESTRO_FLOWS"),
        help="Path to the Maestro flow file or directory",
    )
    parser.add_argument(
        "--max-poll-attempts",
        default=_env(env, "MAESTRO_MAX_POLL_ATTEMPTS") or str(DEFAULT_MAX_POLL_ATTEMPTS),
        help="Boot-completion polls per boot attempt (default: %(default)s)",
    )
    parser.add_argument(
        "--max-boot-retries",
        default=_env(env, "MAESTRO_MAX_BOOT_RETRIES") or str(DEFAULT_MAX_BOOT_RETRIES),
        help="Recreate-and-relaunch cycles after a boot timeout (default: %(default)s)",
    )
    parser.add_argument(
        "--clear-logs",
        action="store_true",
        default=parse_bool(_env(env, "MAESTRO_CLEAR_LOGS"), option="MAESTRO_CLEAR_LOGS"),
        help="Remove previous Maestro test logs before running",
    )
    parser.add_argument(
        "--artifact-dir",
        type=Path,
        default=_env(env, "MAESTRO_ARTIFACT_DIR"),
        help="Directory containing the built app (default depends on platform)",
    )
    parser.add_argument(
        "--artifact-pattern",
        default=_env(env, "MAESTRO_ARTIFACT_PATTERN"),
        help="Glob matched inside --artifact-dir (default: *.apk or *.app)",
    )
    parser.add_argument(
        "--artifact-selection",
        choices=ARTIFACT_SELECTIONS,
        default=_env(env, "MAESTRO_ARTIFACT_SELECTION") or "first",
        help="How to choose between several matching artifacts (default: %(default)s)",
    )
    parser.add_argument(
        "--build-command",
        default=_env(env, "MAESTRO_BUILD_COMMAND"),
        help="Command that builds the app before installation, e.g. './gradlew assembleDebug'",
    )
    parser.add_argument(
        "--maestro",
        default=_env(env, "MAESTRO_BINARY") or "maestro",
        help="Maestro executable (default: %(default)s)",
    )
    return parser


def _int_or_default(value: Optional[str], option: str, default: int) -> int:
    parsed = parse_int(value, option=option)
    return default if parsed is None else parsed


def config_from_args(args: argparse.Namespace) -> OrchestratorConfig:
    if not args.flows:
        raise ConfigurationError("Maestro flow file path is required (--flows or MAESTRO_FLOWS)")
    port = parse_int(args.port, option="port") if args.platform == "android" else None
    default_name, default_image, default_profile = DEFAULT_DEVICES[args.platform]
    config = OrchestratorConfig(
        platform=args.platform,
        device=DeviceSpec(
            name=args.name if args.name is not None else default_name,
            system_image=args.system_image if args.system_image is not None else default_image,
            hardware_profile=(
                args.device_profile if args.device_profile is not None else default_profile
            ),
            port=port,
        ),
        budget=RetryBudget(
            max_poll_attempts=_int_or_default(
                args.max_poll_attempts, "max poll attempts", DEFAULT_MAX_POLL_ATTEMPTS
            ),
            max_boot_retries=_int_or_default(
                args.max_boot_retries, "max boot retries", DEFAULT_MAX_BOOT_RETRIES
            ),
        ),
        flow_path=Path(args.flows),
        sdk_dir=Path(args.sdk_dir).expanduser() if args.sdk_dir else None,
        control_binary=args.control_binary,
        location=parse_location(args.location),
        clear_logs=bool(args.clear_logs),
        artifact_dir=Path(args.artifact_dir) if args.artifact_dir else None,
        artifact_pattern=args.artifact_pattern,
        artifact_selection=args.artifact_selection,
        build_command=shlex.split(args.build_command) if args.build_command else [],
        maestro_binary=args.maestro,
    )
    config.validate()
    return config
