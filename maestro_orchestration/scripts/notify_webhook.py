#!/usr/bin/env python3
"""Notify a webhook that screenshots were uploaded, signing the body with HMAC-SHA256."""

from __future__ import annotations

import argparse
import hashlib
import hmac
import json
import os
import sys
from typing import Dict, Optional, Sequence
from urllib.parse import urlparse

import requests

SIGNATURE_HEADER = "X-Action-Signature"
DEVICES = ("android", "ios")
UPLOAD_MESSAGE = "Screenshots uploaded"


class NotificationError(RuntimeError):
    """Raised when the notification parameters are invalid."""


def folder_path(s3_path: str, version: str, device: str, theme: Optional[str] = None) -> str:
    base = f"{s3_path}/ver:{version}"
    if theme:
        base += f"/theme:{theme}"
    return f"{base}/device:{device}"


def build_payload(version: str, path: str, message: str = UPLOAD_MESSAGE) -> Dict[str, str]:
    return {"message": message, "version": version, "folder_path": path}


def encode_payload(payload: Dict[str, str]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_body(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def validate(url: str, secret: str, version: str, device: str) -> None:
    if not version or not version.strip():
        raise NotificationError("You must provide a version using the `version` parameter.")
    if not device or device.lower() not in DEVICES:
        raise NotificationError("You must specify a device type (android or ios).")
    if not secret or not secret.strip():
        raise NotificationError(
            "You must provide a valid HMAC secret using the `hmac_secret` parameter."
        )
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise NotificationError(f"The provided URL is invalid: {url}")


def send_notification(
    url: str,
    secret: str,
    payload: Dict[str, str],
    *,
    timeout: float = 30.0,
) -> bool:
    body = encode_payload(payload)
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign_body(secret, body),
    }
    try:
        response = requests.post(url, data=body, headers=headers, timeout=timeout)
    except requests.RequestException as error:
        print(f"API request failed: {error}", file=sys.stderr)
        print(f"::error::API request failed: {error}")
        return False
    if response.status_code == 200:
        print(f"API request successful: {response.text}")
        return True
    print(f"API request failed ({response.status_code}): {response.text}", file=sys.stderr)
    print(f"::error::API request failed ({response.status_code})")
    return False


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default=os.environ.get("MAESTRO_SCREENSHOTS_WEBHOOK_URL"))
    parser.add_argument("--hmac-secret", default=os.environ.get("MAESTRO_SCREENSHOTS_HMAC_SECRET"))
    parser.add_argument("--version", default=os.environ.get("MAESTRO_SCREENSHOTS_APP_VERSION"))
    parser.add_argument("--device", default=os.environ.get("MAESTRO_SCREENSHOTS_DEVICE"))
    parser.add_argument("--theme", default=os.environ.get("MAESTRO_SCREENSHOTS_APPLICATION_THEME"))
    parser.add_argument(
        "--s3-path",
        default=os.environ.get("MAESTRO_SCREENSHOTS_S3_PATH", ""),
        help="Base path after the bucket name",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        validate(args.url, args.hmac_secret, args.version, args.device)
    except NotificationError as error:
        print(str(error), file=sys.stderr)
        return 1
    payload = build_payload(
        args.version, folder_path(args.s3_path, args.version, args.device, args.theme)
    )
    return 0 if send_notification(args.url, args.hmac_secret, payload) else 1


if __name__ == "__main__":
    sys.exit(main())
