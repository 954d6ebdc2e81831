"""Apply SSH bootstrap and client setup across a list of compute nodes."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Sequence

from ..log import error, log, warn
from ..runner import CommandError, CommandRunner, Step, StepResult, run_pipeline
from .compute import setup_compute_node
from .config import ClusterConfig
from .ssh import SshAgent, bootstrap_node, ensure_key_pair


@dataclass(slots=True)
class NodeResult:
    address: str
    result: StepResult

    @property
    def ok(self) -> bool:
        return self.result.ok


def provision_node(config: ClusterConfig, address: str, runner: CommandRunner) -> StepResult:
    """Bootstrap SSH trust on ``address`` and then configure it as an NFS client."""

    result = bootstrap_node(config, address, runner)
    if not result.ok:
        return result
    return setup_compute_node(config, address, runner)


def _agent_steps(config: ClusterConfig, agent: SshAgent) -> list[Step]:
    return [
        Step("Starting ssh-agent", agent.start),
        Step(f"Adding {config.ssh_key} to ssh-agent", partial(agent.add_key, config)),
    ]


def provision_compute_nodes(
    config: ClusterConfig,
    addresses: Sequence[str],
    runner: CommandRunner,
    *,
    keep_going: bool = False,
    jobs: int = 1,
) -> list[NodeResult]:
    """Provision every node in ``addresses``.

    By default nodes are handled one at a time in input order and the first
    failure stops the run; later nodes are never contacted. With
    ``keep_going`` every node is attempted (``jobs`` at a time) and each gets
    its own result.
    """

    agent = SshAgent(runner)
    try:
        if keep_going:
            return _provision_all(config, addresses, runner, agent, jobs=jobs)
        return _provision_until_failure(config, addresses, runner, agent)
    finally:
        try:
            agent.stop()
        except CommandError as exc:
            warn(f"could not stop ssh-agent: {exc}")


def _provision_until_failure(
    config: ClusterConfig,
    addresses: Sequence[str],
    runner: CommandRunner,
    agent: SshAgent,
) -> list[NodeResult]:
    results: list[NodeResult] = []
    node_runner: CommandRunner | None = None
    for address in addresses:
        log(f"Provisioning compute node {address}")
        result = bootstrap_node(config, address, runner)
        # The agent needs the key pair, which the first bootstrap may create.
        if result.ok and node_runner is None:
            result = run_pipeline(_agent_steps(config, agent))
            node_runner = runner.with_env(agent.env)
        if result.ok:
            result = setup_compute_node(config, address, node_runner)
        results.append(NodeResult(address, result))
        if not result.ok:
            error(f"{address}: {result.describe()}")
            break
    return results


def _provision_all(
    config: ClusterConfig,
    addresses: Sequence[str],
    runner: CommandRunner,
    agent: SshAgent,
    *,
    jobs: int,
) -> list[NodeResult]:
    prepared = run_pipeline(
        [
            Step("Checking local SSH key pair", partial(ensure_key_pair, config, runner)),
            *_agent_steps(config, agent),
        ]
    )
    if not prepared.ok:
        error(prepared.describe())
        return [NodeResult(address, prepared) for address in addresses]

    node_runner = runner.with_env(agent.env)
    with ThreadPoolExecutor(max_workers=max(jobs, 1)) as pool:
        outcomes = pool.map(partial(provision_node, config, runner=node_runner), addresses)
        results = [NodeResult(address, outcome) for address, outcome in zip(addresses, outcomes)]

    for line in format_summary(results):
        log(line)
    return results


def format_summary(results: Sequence[NodeResult]) -> list[str]:
    succeeded = sum(1 for item in results if item.ok)
    lines = [f"Provisioned {succeeded}/{len(results)} compute nodes"]
    for item in results:
        status = "ok" if item.ok else f"FAILED ({item.result.describe()})"
        lines.append(f"  - {item.address}: {status}")
    return lines


__all__ = [
    "NodeResult",
    "format_summary",
    "provision_compute_nodes",
    "provision_node",
]
