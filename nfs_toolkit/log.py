"""Timestamped console output shared by every provisioning step."""

from __future__ import annotations

import sys
from datetime import datetime, timezone


def timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def log(message: str) -> None:
    print(f"[{timestamp()}] {message}", flush=True)


def warn(message: str) -> None:
    print(f"[{timestamp()}] warning: {message}", file=sys.stderr, flush=True)


def error(message: str) -> None:
    print(f"[{timestamp()}] error: {message}", file=sys.stderr, flush=True)
