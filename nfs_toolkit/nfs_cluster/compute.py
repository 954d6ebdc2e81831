"""Remote NFS client setup for compute nodes."""

from __future__ import annotations

import os
import shlex
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from functools import partial
from pathlib import Path

from ..log import log
from ..runner import CommandRunner, Step, StepResult, run_pipeline
from .config import ClusterConfig
from .ssh import build_scp_command, build_ssh_command, destination

WRITE_SCRIPT_LABEL = "Writing local client setup script"


def render_fstab_entries(config: ClusterConfig) -> list[str]:
    """Mount table lines for every share. Independent of the target node."""

    return [
        f"{config.master_address}:{path} {path} nfs {config.mount_options} 0 0"
        for path in config.share_paths()
    ]


def render_client_script(config: ClusterConfig) -> str:
    fstab = shlex.quote(str(config.fstab_file))
    directories = " ".join(shlex.quote(str(path)) for path in config.share_paths())
    lines = [
        "#!/bin/bash",
        "set -eu",
        "",
        "export DEBIAN_FRONTEND=noninteractive",
        f"apt-get install -y -qq {shlex.quote(config.client_package)}",
        f"mkdir -p {directories}",
    ]
    for entry in render_fstab_entries(config):
        quoted = shlex.quote(entry)
        lines.append(f"grep -qsxF {quoted} {fstab} || echo {quoted} >> {fstab}")
    lines.append("mount -a")
    return "\n".join(lines) + "\n"


@contextmanager
def materialize_script(content: str) -> Iterator[Path]:
    """Write ``content`` to a local temporary file removed on exit."""

    handle, name = tempfile.mkstemp(prefix="nfs-client-", suffix=".sh")
    path = Path(name)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(content)
        yield path
    finally:
        path.unlink(missing_ok=True)


def build_remote_steps(
    config: ClusterConfig, address: str, script: Path, runner: CommandRunner
) -> list[Step]:
    remote = config.remote_script_path
    target = destination(config, address)
    run_remote = build_ssh_command(config, address, ["bash", shlex.quote(remote)])
    return [
        Step(
            f"Copying client setup script to {target}:{remote}",
            partial(runner.run, build_scp_command(config, address, str(script), remote)),
        ),
        Step(
            f"Running client setup on {target}",
            partial(runner.run, run_remote),
        ),
    ]


def setup_compute_node(
    config: ClusterConfig, address: str, runner: CommandRunner
) -> StepResult:
    log(f"Configuring NFS client on {address}")
    try:
        with materialize_script(render_client_script(config)) as script:
            result = run_pipeline(build_remote_steps(config, address, script, runner))
    except OSError as exc:
        # Only the local temp script can raise here.
        return StepResult(label=WRITE_SCRIPT_LABEL, error=exc)
    if result.ok:
        log(f"NFS client setup complete on {address}")
    return result


__all__ = [
    "build_remote_steps",
    "materialize_script",
    "render_client_script",
    "render_fstab_entries",
    "setup_compute_node",
]
