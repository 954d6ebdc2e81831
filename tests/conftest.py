"""Test fixtures and configuration helpers."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Ensure the project root is importable so ``sitecustomize`` is discovered by
# subprocesses spawned in tests.  ``sys.path`` adjustments affect the current
# interpreter while the ``PYTHONPATH`` export keeps child interpreters aligned.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from nfs_toolkit.nfs_cluster import ClusterConfig  # noqa: E402

FAKE_TOOLS: tuple[str, ...] = (
    "apt-get",
    "chown",
    "chmod",
    "exportfs",
    "systemctl",
    "ssh-keygen",
    "ssh-copy-id",
    "ssh-agent",
    "ssh-add",
    "scp",
    "ssh",
)

_TOOL_EXTRAS = {
    "ssh-agent": (
        'case "$*" in *-k*) exit 0;; esac\n'
        'echo "SSH_AUTH_SOCK=/tmp/fake-agent.sock; export SSH_AUTH_SOCK;"\n'
        'echo "SSH_AGENT_PID=4242; export SSH_AGENT_PID;"\n'
        'echo "echo Agent pid 4242;"\n'
    ),
    "ssh-keygen": 'for last; do :; done\ntouch "$last" "$last.pub"\n',
}


def _export_pythonpath(monkeypatch: pytest.MonkeyPatch) -> None:
    path_str = str(ROOT)
    pythonpath = os.environ.get("PYTHONPATH")
    if not pythonpath:
        monkeypatch.setenv("PYTHONPATH", path_str)
        return
    parts = pythonpath.split(os.pathsep)
    if path_str in parts:
        return
    parts.insert(0, path_str)
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(parts))


@pytest.fixture(autouse=True)
def enable_subprocess_coverage(monkeypatch: pytest.MonkeyPatch) -> None:
    """Propagate coverage configuration to subprocesses under test."""

    monkeypatch.setenv("COVERAGE_PROCESS_START", str(ROOT / ".coveragerc"))
    _export_pythonpath(monkeypatch)


@pytest.fixture(autouse=True)
def _isolate_cluster_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("NFS_CLUSTER_"):
            monkeypatch.delenv(key, raising=False)


@dataclass
class FakeTools:
    """Shim executables placed first on ``PATH`` that record every call."""

    bin_dir: Path
    log_file: Path

    def calls(self) -> list[str]:
        if not self.log_file.exists():
            return []
        return self.log_file.read_text(encoding="utf-8").splitlines()

    def tools(self) -> list[str]:
        return [line.split(" ", 1)[0] for line in self.calls()]


@pytest.fixture
def fake_tools(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    """Stub the package manager, service manager and SSH tooling.

    Set ``FAKE_FAIL_MATCH`` to make any call whose rendered command line
    contains that text exit with status 1.
    """

    bin_dir = tmp_path / "fake-bin"
    bin_dir.mkdir()
    log_file = tmp_path / "fake-calls.log"
    for tool in FAKE_TOOLS:
        script = (
            "#!/bin/sh\n"
            f'echo "{tool} $*" >> "$FAKE_TOOL_LOG"\n'
            'if [ -n "$FAKE_FAIL_MATCH" ]; then\n'
            f'  case "{tool} $*" in *"$FAKE_FAIL_MATCH"*) echo "{tool} failed" >&2; exit 1;; esac\n'
            "fi\n"
            f"{_TOOL_EXTRAS.get(tool, '')}"
            "exit 0\n"
        )
        path = bin_dir / tool
        path.write_text(script, encoding="utf-8")
        path.chmod(0o755)

    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}" + os.environ.get("PATH", ""))
    monkeypatch.setenv("FAKE_TOOL_LOG", str(log_file))
    monkeypatch.delenv("FAKE_FAIL_MATCH", raising=False)
    return FakeTools(bin_dir=bin_dir, log_file=log_file)


@pytest.fixture
def cluster_config(tmp_path: Path) -> ClusterConfig:
    """A configuration whose every filesystem path lives under ``tmp_path``."""

    return ClusterConfig(
        base_path=tmp_path / "shared",
        master_address="10.1.1.1",
        exports_file=tmp_path / "exports",
        ssh_key=tmp_path / "ssh" / "id_rsa",
    )
