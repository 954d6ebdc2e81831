"""Passwordless SSH helpers: key pair, key distribution, agent, ssh/scp commands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import partial
from typing import Iterable, Sequence

from ..log import log
from ..runner import CommandRunner, ProvisionError, Step, StepResult, run_pipeline
from .config import ClusterConfig

_AGENT_VAR = re.compile(r"(SSH_AUTH_SOCK|SSH_AGENT_PID)=([^;\s]+)")


def destination(config: ClusterConfig, address: str) -> str:
    return f"{config.ssh_user}@{address}" if config.ssh_user else address


def _connection_options(config: ClusterConfig, options: Iterable[str] = ()) -> list[str]:
    command = [
        "-o",
        f"ConnectTimeout={config.connect_timeout}",
        "-o",
        "BatchMode=yes",
        "-o",
        "StrictHostKeyChecking=no",
    ]
    for opt in options:
        command.extend(["-o", opt])
    command.extend(["-i", str(config.ssh_key)])
    return command


def build_ssh_command(
    config: ClusterConfig,
    address: str,
    remote_command: Sequence[str],
    *,
    options: Iterable[str] = (),
) -> list[str]:
    command = ["ssh", *_connection_options(config, options), destination(config, address)]
    command.extend(remote_command)
    return command


def build_scp_command(
    config: ClusterConfig,
    address: str,
    local_path: str,
    remote_path: str,
    *,
    options: Iterable[str] = (),
) -> list[str]:
    return [
        "scp",
        *_connection_options(config, options),
        local_path,
        f"{destination(config, address)}:{remote_path}",
    ]


def build_keygen_command(config: ClusterConfig) -> list[str]:
    return ["ssh-keygen", "-t", "rsa", "-b", "4096", "-N", "", "-q", "-f", str(config.ssh_key)]


def build_copy_id_command(config: ClusterConfig, address: str) -> list[str]:
    return [
        "ssh-copy-id",
        "-i",
        str(config.public_key),
        "-o",
        "StrictHostKeyChecking=no",
        "-o",
        "PasswordAuthentication=no",
        destination(config, address),
    ]


def ensure_key_pair(config: ClusterConfig, runner: CommandRunner) -> bool:
    """Generate the local key pair when missing. Returns ``True`` if one was created."""

    if config.ssh_key.exists():
        return False
    log(f"Generating SSH key pair at {config.ssh_key}")
    if not runner.dry_run:
        config.ssh_key.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    runner.run(build_keygen_command(config))
    return True


def bootstrap_node(config: ClusterConfig, address: str, runner: CommandRunner) -> StepResult:
    """Make ``address`` trust the local public key."""

    return run_pipeline(
        [
            Step("Checking local SSH key pair", partial(ensure_key_pair, config, runner)),
            Step(
                f"Copying SSH key to {destination(config, address)}",
                partial(runner.run, build_copy_id_command(config, address)),
            ),
        ]
    )


def parse_agent_output(output: str) -> dict[str, str]:
    env = dict(_AGENT_VAR.findall(output))
    if "SSH_AUTH_SOCK" not in env:
        raise ProvisionError("ssh-agent", "output did not include SSH_AUTH_SOCK")
    return env


@dataclass(slots=True)
class SshAgent:
    """A process-local ssh-agent holding the cluster key for the whole run."""

    runner: CommandRunner
    env: dict[str, str] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return bool(self.env)

    def start(self) -> CommandRunner:
        """Start the agent and return a runner whose commands can reach it."""

        output = self.runner.capture(["ssh-agent", "-s"])
        if self.runner.dry_run:
            return self.runner
        self.env = parse_agent_output(output)
        log(f"Started ssh-agent (pid {self.env.get('SSH_AGENT_PID', 'unknown')})")
        return self.runner.with_env(self.env)

    def add_key(self, config: ClusterConfig) -> None:
        self.runner.with_env(self.env).run(["ssh-add", str(config.ssh_key)])

    def stop(self) -> None:
        if not self.running:
            return
        self.runner.with_env(self.env).run(["ssh-agent", "-k"])
        self.env = {}


__all__ = [
    "SshAgent",
    "bootstrap_node",
    "build_copy_id_command",
    "build_keygen_command",
    "build_scp_command",
    "build_ssh_command",
    "destination",
    "ensure_key_pair",
    "parse_agent_output",
]
