#!/usr/bin/env python3
"""Run Maestro flows against a freshly provisioned emulator or simulator.

The run kills every registered device, recreates the configured image,
launches it, waits for boot completion (recreating the device when boot
times out), applies demo-mode overrides, installs the built app, runs the
flows against the launched device and tears everything down again. When an
upload bucket is configured and the flows pass, screenshots are uploaded to
S3 and, with a webhook URL, a signed notification is sent.
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

from maestro_orchestration import console
from maestro_orchestration.artifacts import ApkInstaller, SimulatorAppInstaller
from maestro_orchestration.boot_waiter import AndroidBootProbe, BootWaiter, SimulatorBootProbe
from maestro_orchestration.config import (
    OrchestratorConfig,
    build_parser,
    config_from_args,
    merged_environment,
)
from maestro_orchestration.control_channel import android_channels, simctl_channel
from maestro_orchestration.demo_mode import AndroidDeviceConfigurator, SimulatorConfigurator
from maestro_orchestration.errors import OrchestrationError, TestExecutionFailure
from maestro_orchestration.flow_runner import MaestroFlowRunner
from maestro_orchestration.launcher import EmulatorLauncher, SimulatorLauncher
from maestro_orchestration.orchestrator import LifecycleComponents, LifecycleOrchestrator
from maestro_orchestration.provisioner import AvdProvisioner, SimulatorProvisioner
from maestro_orchestration.registry import AndroidDeviceRegistry, SimulatorRegistry
from maestro_orchestration.scripts import notify_webhook, upload_screenshots


def build_components(config: OrchestratorConfig) -> LifecycleComponents:
    flow_runner = MaestroFlowRunner(config.maestro_binary)
    if config.platform == "ios":
        simctl = simctl_channel(config.control_binary)
        registry = SimulatorRegistry(simctl)
        return LifecycleComponents(
            registry=registry,
            provisioner=SimulatorProvisioner(simctl),
            launcher=SimulatorLauncher(simctl, registry),
            boot_waiter=BootWaiter(SimulatorBootProbe(simctl)),
            configurator=SimulatorConfigurator(simctl),
            installer=SimulatorAppInstaller(simctl),
            flow_runner=flow_runner,
        )

    channels = android_channels(config.sdk_dir, config.control_binary)
    adb = channels["adb"]
    return LifecycleComponents(
        registry=AndroidDeviceRegistry(adb),
        provisioner=AvdProvisioner(channels["avdmanager"]),
        launcher=EmulatorLauncher(channels["emulator"]),
        boot_waiter=BootWaiter(AndroidBootProbe(adb)),
        configurator=AndroidDeviceConfigurator(adb),
        installer=ApkInstaller(adb),
        flow_runner=flow_runner,
    )


def add_publish_arguments(
    parser: argparse.ArgumentParser, environ: Optional[Mapping[str, str]] = None
) -> None:
    env = os.environ if environ is None else environ
    group = parser.add_argument_group("publishing")
    group.add_argument(
        "--screenshots-dir",
        type=Path,
        default=env.get("MAESTRO_SCREENSHOTS_FOLDER_PATH") or None,
        help="Folder of screenshots to upload after a passing run",
    )
    group.add_argument(
        "--upload-bucket",
        default=env.get("MAESTRO_SCREENSHOTS_S3_BUCKET"),
        help="S3 bucket; uploading is skipped when unset",
    )
    group.add_argument("--aws-region", default=env.get("AWS_REGION"))
    group.add_argument("--app-version", default=env.get("MAESTRO_SCREENSHOTS_APP_VERSION"))
    group.add_argument("--theme", default=env.get("MAESTRO_SCREENSHOTS_APPLICATION_THEME"))
    group.add_argument(
        "--project",
        default=env.get("MAESTRO_SCREENSHOTS_PROJECT", upload_screenshots.DEFAULT_PROJECT),
    )
    group.add_argument("--webhook-url", default=env.get("MAESTRO_SCREENSHOTS_WEBHOOK_URL"))
    group.add_argument("--hmac-secret", default=env.get("MAESTRO_SCREENSHOTS_HMAC_SECRET"))
    group.add_argument("--s3-path", default=env.get("MAESTRO_SCREENSHOTS_S3_PATH", ""))


def publish(args: argparse.Namespace) -> int:
    if not args.upload_bucket:
        return 0
    request = upload_screenshots.UploadRequest(
        folder_path=args.screenshots_dir,
        bucket=args.upload_bucket,
        version=args.app_version or "",
        device=args.platform,
        theme=args.theme,
        project=args.project,
    )
    try:
        upload_screenshots.upload_folder(request, region=args.aws_region)
    except upload_screenshots.UploadError as error:
        console.error(str(error))
        return 1

    if not args.webhook_url:
        return 0
    try:
        notify_webhook.validate(args.webhook_url, args.hmac_secret, request.version, args.platform)
    except notify_webhook.NotificationError as error:
        console.error(str(error))
        return 1
    payload = notify_webhook.build_payload(
        request.version,
        notify_webhook.folder_path(args.s3_path, request.version, args.platform, args.theme),
    )
    return 0 if notify_webhook.send_notification(args.webhook_url, args.hmac_secret, payload) else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    environ = merged_environment()
    try:
        parser = build_parser(environ)
        add_publish_arguments(parser, environ)
        args = parser.parse_args(argv)
        config = config_from_args(args)
        orchestrator = LifecycleOrchestrator(config, build_components(config))
        result = orchestrator.run()
    except (OrchestrationError, OSError) as error:
        console.error(str(error))
        return 1

    for warning in result.teardown_warnings:
        print(f"Teardown warning: {warning}", file=sys.stderr)
    try:
        result.raise_for_status()
    except TestExecutionFailure as failure:
        return failure.exit_code
    return publish(args)


if __name__ == "__main__":
    sys.exit(main())
