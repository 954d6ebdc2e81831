#!/usr/bin/env python3
"""Provision an NFS master or a set of NFS compute clients.

Usage:
    nfs_cluster_setup.py master <SUBNET>
    nfs_cluster_setup.py compute <NODE_IP> [<NODE_IP> ...]
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from nfs_toolkit.cli import main  # noqa: E402

__all__ = ["main"]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
