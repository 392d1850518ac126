"""Remove Maestro test logs left behind by previous runs."""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import Optional, Sequence

DEFAULT_LOGS_DIR = Path.home() / ".maestro" / "tests"


def clean_logs(logs_dir: Path = DEFAULT_LOGS_DIR) -> bool:
    """Delete ``logs_dir`` recursively; returns whether anything was removed."""

    try:
        shutil.rmtree(logs_dir)
    except FileNotFoundError:
        return False
    print(f"Removed Maestro logs at {logs_dir}")
    return True


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--logs-dir",
        type=Path,
        default=DEFAULT_LOGS_DIR,
        help="Directory to remove (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        clean_logs(args.logs_dir)
    except OSError as error:
        print(f"Failed to remove {args.logs_dir}: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
