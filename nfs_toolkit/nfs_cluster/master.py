"""Turn the local host into the NFS server for a compute subnet."""

from __future__ import annotations

from functools import partial
from pathlib import Path

from ..log import log, warn
from ..runner import CommandRunner, Step, StepResult, run_pipeline
from .config import ClusterConfig


def export_client_spec(config: ClusterConfig, subnet: str) -> str:
    """Return ``<subnet>/<mask>(<options>)`` for one export line."""

    options = ",".join(config.export_options)
    return f"{subnet}/{config.subnet_mask}({options})"


def render_exports(config: ClusterConfig, subnet: str) -> str:
    client = export_client_spec(config, subnet)
    lines = [f"{path}\t{client}" for path in config.share_paths()]
    return "\n".join(lines) + "\n"


def write_exports(path: Path, content: str, *, dry_run: bool = False) -> None:
    """Replace the export table with ``content``."""

    if dry_run:
        log(f"DRY-RUN: write {path}")
        for line in content.splitlines():
            log(f"DRY-RUN:   {line}")
        return
    path.write_text(content, encoding="utf-8")


def build_install_command(package: str) -> list[str]:
    return [
        "env",
        "DEBIAN_FRONTEND=noninteractive",
        "apt-get",
        "install",
        "-y",
        "-qq",
        package,
    ]


def build_master_steps(
    config: ClusterConfig, subnet: str, runner: CommandRunner
) -> list[Step]:
    base = str(config.base_path)
    service = config.server_service
    exports = render_exports(config, subnet)
    return [
        Step(
            f"Installing {config.server_package}",
            partial(runner.run, build_install_command(config.server_package)),
        ),
        Step(
            "Creating export directories",
            partial(runner.run, ["mkdir", "-p", *(str(p) for p in config.share_paths())]),
        ),
        Step(
            f"Setting ownership of {base} to {config.share_owner}",
            partial(runner.run, ["chown", "-R", config.share_owner, base]),
        ),
        Step(
            f"Setting permissions of {base} to {config.share_mode}",
            partial(runner.run, ["chmod", "-R", config.share_mode, base]),
        ),
        Step(
            f"Writing {config.exports_file}",
            partial(write_exports, config.exports_file, exports, dry_run=runner.dry_run),
        ),
        Step("Re-exporting shares", partial(runner.run, ["exportfs", "-ra"])),
        Step(
            f"Restarting {service}",
            partial(runner.run, ["systemctl", "restart", service]),
        ),
        Step(
            f"Enabling {service} at boot",
            partial(runner.run, ["systemctl", "enable", service]),
        ),
    ]


def setup_master(config: ClusterConfig, subnet: str, runner: CommandRunner) -> StepResult:
    if "/" in subnet:
        # The mask is always appended, so "10.0.0.0/16" becomes "10.0.0.0/16/24".
        warn(
            f"subnet {subnet!r} already carries a mask; "
            f"/{config.subnet_mask} is appended regardless"
        )
    log(f"Configuring NFS master for {subnet}/{config.subnet_mask}")
    result = run_pipeline(build_master_steps(config, subnet, runner))
    if result.ok:
        log("NFS master setup complete")
    return result


__all__ = [
    "build_install_command",
    "build_master_steps",
    "export_client_spec",
    "render_exports",
    "setup_master",
    "write_exports",
]
