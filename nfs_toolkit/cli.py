"""Entry points for the nfs-cluster CLI."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Sequence

from .log import error
from .nfs_cluster import (
    ClusterConfig,
    load_cluster_config,
    provision_compute_nodes,
    setup_master,
)
from .runner import CommandRunner, ProvisionError

PROG = "nfs-cluster"
MASTER_USAGE = f"usage: {PROG} master <SUBNET>"
COMPUTE_USAGE = f"usage: {PROG} compute <NODE_IP> [<NODE_IP> ...]"
GENERAL_USAGE = "\n".join(
    [
        f"usage: {PROG} {{master,compute}} ...",
        "",
        "  master <SUBNET>                     export the shared directories to SUBNET",
        "  compute <NODE_IP> [<NODE_IP> ...]   mount the shared directories on each node",
    ]
)


class UsageError(Exception):
    """Raised for missing or invalid arguments, before anything is changed."""

    def __init__(self, usage: str, message: str | None = None) -> None:
        super().__init__(message or usage)
        self.usage = usage
        self.message = message


class _ModeParser(argparse.ArgumentParser):
    def __init__(self, *, usage_text: str, **kwargs) -> None:
        # No -h/--help: only the documented modes and options are accepted.
        super().__init__(add_help=False, **kwargs)
        self.usage_text = usage_text

    def error(self, message: str):  # type: ignore[override]
        raise UsageError(self.usage_text, message)


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Path to a cluster configuration TOML file.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the commands without executing them.",
    )


def build_master_parser() -> argparse.ArgumentParser:
    parser = _ModeParser(
        prog=f"{PROG} master",
        usage_text=MASTER_USAGE,
        description="Install and configure the NFS server on this host.",
    )
    parser.add_argument("subnet", nargs="?", help="Client subnet address, e.g. 10.0.0.0.")
    _add_common_options(parser)
    return parser


def build_compute_parser() -> argparse.ArgumentParser:
    parser = _ModeParser(
        prog=f"{PROG} compute",
        usage_text=COMPUTE_USAGE,
        description="Trust, then configure each node as an NFS client over SSH.",
    )
    parser.add_argument("nodes", nargs="*", metavar="NODE_IP", help="Compute node addresses.")
    _add_common_options(parser)
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Attempt every node and print a summary instead of stopping at the first failure.",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        metavar="N",
        help="Nodes provisioned concurrently with --keep-going. Defaults to 1.",
    )
    return parser


def _load_config(config_arg: str | None) -> ClusterConfig:
    if not config_arg:
        return ClusterConfig.from_env(os.environ)
    config_path = Path(config_arg).expanduser()
    if not config_path.is_absolute():
        config_path = (Path.cwd() / config_path).resolve()
    return load_cluster_config(config_path, os.environ)


def _handle_master(argv: Sequence[str]) -> int:
    args = build_master_parser().parse_args(list(argv))
    if not args.subnet:
        raise UsageError(MASTER_USAGE)
    config = _load_config(args.config)
    setup_master(config, args.subnet, CommandRunner(dry_run=args.dry_run)).raise_for_failure()
    return 0


def _handle_compute(argv: Sequence[str]) -> int:
    args = build_compute_parser().parse_args(list(argv))
    if not args.nodes:
        raise UsageError(COMPUTE_USAGE)
    if args.jobs < 1:
        raise UsageError(COMPUTE_USAGE, "--jobs must be at least 1")
    config = _load_config(args.config)
    results = provision_compute_nodes(
        config,
        args.nodes,
        CommandRunner(dry_run=args.dry_run),
        keep_going=args.keep_going,
        jobs=args.jobs,
    )
    if len(results) != len(args.nodes) or not all(item.ok for item in results):
        return 1
    return 0


HANDLERS = {
    "master": _handle_master,
    "compute": _handle_compute,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in HANDLERS:
        print(GENERAL_USAGE, file=sys.stderr)
        return 1

    handler = HANDLERS[args[0]]
    try:
        return handler(args[1:])
    except UsageError as exc:
        print(exc.usage, file=sys.stderr)
        if exc.message:
            print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except ProvisionError as exc:
        error(str(exc))
        return 1
