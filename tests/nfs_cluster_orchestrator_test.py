from __future__ import annotations

import pytest

from nfs_toolkit.nfs_cluster import orchestrator
from nfs_toolkit.runner import CommandError, CommandRunner, StepResult

NODES = ["10.0.0.11", "10.0.0.12", "10.0.0.13", "10.0.0.14", "10.0.0.15"]


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch):
    """Replace the per-node procedures with recorders; ``fail`` holds failing nodes."""

    state: dict[str, object] = {"calls": [], "fail": set()}

    def fake_bootstrap(config, address, runner):
        state["calls"].append(("bootstrap", address))
        return StepResult()

    def fake_setup(config, address, runner):
        state["calls"].append(("setup", address))
        if address in state["fail"]:
            return StepResult("Running client setup", CommandError(["ssh", address], 1))
        return StepResult()

    monkeypatch.setattr(orchestrator, "bootstrap_node", fake_bootstrap)
    monkeypatch.setattr(orchestrator, "setup_compute_node", fake_setup)
    return state


def test_nodes_processed_in_input_order(cluster_config, recorded) -> None:
    results = orchestrator.provision_compute_nodes(
        cluster_config, NODES, CommandRunner(dry_run=True)
    )

    assert [item.address for item in results] == NODES
    assert all(item.ok for item in results)
    expected = []
    for node in NODES:
        expected.extend([("bootstrap", node), ("setup", node)])
    assert recorded["calls"] == expected


@pytest.mark.parametrize("failing_index", [0, 2, 4])
def test_first_failure_halts_remaining_nodes(cluster_config, recorded, failing_index) -> None:
    failing = NODES[failing_index]
    recorded["fail"] = {failing}

    results = orchestrator.provision_compute_nodes(
        cluster_config, NODES, CommandRunner(dry_run=True)
    )

    touched = [address for _, address in recorded["calls"]]
    assert touched[-1] == failing
    for node in NODES[: failing_index + 1]:
        assert ("bootstrap", node) in recorded["calls"]
        assert ("setup", node) in recorded["calls"]
    for node in NODES[failing_index + 1 :]:
        assert node not in touched
    assert len(results) == failing_index + 1
    assert not results[-1].ok


def test_keep_going_attempts_every_node(cluster_config, recorded, capsys) -> None:
    recorded["fail"] = {NODES[1], NODES[3]}

    results = orchestrator.provision_compute_nodes(
        cluster_config, NODES, CommandRunner(dry_run=True), keep_going=True, jobs=3
    )

    assert [item.address for item in results] == NODES
    assert [item.ok for item in results] == [True, False, True, False, True]
    out = capsys.readouterr().out
    assert "Provisioned 3/5 compute nodes" in out
    assert f"{NODES[1]}: FAILED" in out


def test_format_summary_lists_each_node() -> None:
    results = [
        orchestrator.NodeResult("a", StepResult()),
        orchestrator.NodeResult("b", StepResult("Copying SSH key", CommandError(["x"], 2))),
    ]

    lines = orchestrator.format_summary(results)

    assert lines[0] == "Provisioned 1/2 compute nodes"
    assert lines[1] == "  - a: ok"
    assert lines[2].startswith("  - b: FAILED (Copying SSH key: x exited with status 2")


def test_end_to_end_with_stubbed_tools(cluster_config, fake_tools) -> None:
    results = orchestrator.provision_compute_nodes(
        cluster_config, ["10.0.0.21", "10.0.0.22"], CommandRunner()
    )

    assert all(item.ok for item in results)
    assert fake_tools.tools() == [
        "ssh-keygen",
        "ssh-copy-id",
        "ssh-agent",
        "ssh-add",
        "scp",
        "ssh",
        "ssh-copy-id",
        "scp",
        "ssh",
        "ssh-agent",
    ]


def test_end_to_end_failure_skips_later_nodes(cluster_config, fake_tools, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_FAIL_MATCH", "root@10.0.0.22")

    results = orchestrator.provision_compute_nodes(
        cluster_config, ["10.0.0.21", "10.0.0.22", "10.0.0.23"], CommandRunner()
    )

    assert [item.ok for item in results] == [True, False]
    assert not any("10.0.0.23" in line for line in fake_tools.calls())
    assert fake_tools.calls()[-1] == "ssh-agent -k"
