#!/usr/bin/env python3
"""Upload captured screenshots to S3 under a versioned, per-device prefix.

Keys follow ``projects/<project>/screenshots/ver:<version>[/theme:<theme>]/device:<device>/<file>``.
Only regular files directly inside the folder are uploaded.
"""
from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

DEFAULT_PROJECT = "PAD"
DEFAULT_REGION = "us-east-1"


class UploadError(RuntimeError):
    """Raised when the upload cannot start or a put fails."""


@dataclass(frozen=True)
class UploadRequest:
    folder_path: Optional[Path]
    bucket: str
    version: str
    device: str
    theme: Optional[str] = None
    project: str = DEFAULT_PROJECT

    def validate(self) -> None:
        missing = [
            name
            for name, value in (
                ("folder_path", "" if self.folder_path is None else str(self.folder_path)),
                ("bucket", self.bucket),
                ("version", self.version),
                ("device", self.device),
            )
            if not value or not value.strip()
        ]
        if missing:
            for name in missing:
                print(f"Missing parameter: {name}", file=sys.stderr)
            raise UploadError(f"Missing required parameters: {', '.join(missing)}")
        if not self.folder_path.is_dir():
            raise UploadError(f"The folder path does not exist: {self.folder_path}")


def screenshot_prefix(
    version: str,
    device: str,
    theme: Optional[str] = None,
    project: str = DEFAULT_PROJECT,
) -> str:
    prefix = f"projects/{project}/screenshots/ver:{version}"
    if theme:
        prefix += f"/theme:{theme}"
    return f"{prefix}/device:{device}"


def upload_folder(
    request: UploadRequest, client: Any = None, *, region: Optional[str] = None
) -> List[str]:
    """Upload every file in the folder and return the keys written."""

    request.validate()
    if client is None:
        region = region or os.environ.get("AWS_REGION", DEFAULT_REGION)
        client = boto3.client("s3", region_name=region)

    prefix = screenshot_prefix(request.version, request.device, request.theme, request.project)
    print("Uploading screenshots to S3...")
    print(f"Folder path: {request.folder_path}")
    keys: List[str] = []
    for path in sorted(request.folder_path.iterdir()):
        if path.is_dir():
            continue
        key = f"{prefix}/{path.name}"
        print(f"Uploading {path} to s3://{request.bucket}/{key}")
        try:
            with path.open("rb") as body:
                client.put_object(Bucket=request.bucket, Key=key, Body=body)
        except (BotoCoreError, ClientError) as error:
            raise UploadError(f"Failed to upload {path} to s3://{request.bucket}/{key}: {error}") from error
        keys.append(key)
    print("Upload to S3 completed.")
    return keys


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--folder-path",
        type=Path,
        default=os.environ.get("MAESTRO_SCREENSHOTS_FOLDER_PATH") or None,
        help="Folder whose files are uploaded",
    )
    parser.add_argument(
        "--bucket",
        default=os.environ.get("MAESTRO_SCREENSHOTS_S3_BUCKET"),
        help="Destination S3 bucket",
    )
    parser.add_argument(
        "--version",
        default=os.environ.get("MAESTRO_SCREENSHOTS_APP_VERSION"),
        help="App version the screenshots were taken from",
    )
    parser.add_argument(
        "--device",
        default=os.environ.get("MAESTRO_SCREENSHOTS_DEVICE"),
        help="Device kind: android or ios",
    )
    parser.add_argument(
        "--theme",
        default=os.environ.get("MAESTRO_SCREENSHOTS_APPLICATION_THEME"),
        help="Optional theme, e.g. dark or light",
    )
    parser.add_argument(
        "--project",
        default=os.environ.get("MAESTRO_SCREENSHOTS_PROJECT", DEFAULT_PROJECT),
        help="Project segment of the key prefix (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    request = UploadRequest(
        folder_path=args.folder_path,
        bucket=args.bucket or "",
        version=args.version or "",
        device=args.device or "",
        theme=args.theme,
        project=args.project,
    )
    try:
        upload_folder(request)
    except UploadError as error:
        print(str(error), file=sys.stderr)
        print(f"::error::{error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
