"""Progress output with GitHub Actions workflow annotations."""

from __future__ import annotations

import sys


def info(message: str) -> None:
    print(message, flush=True)


def warning(message: str) -> None:
    print(message, file=sys.stderr)
    print(f"::warning::{message}", flush=True)


def error(message: str) -> None:
    print(message, file=sys.stderr)
    print(f"::error::{message}", flush=True)
