"""Utility helpers for running provisioning commands consistently."""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from .log import log


class ProvisionError(RuntimeError):
    """Raised when a provisioning step fails."""

    def __init__(self, label: str, cause: BaseException | str | None = None) -> None:
        self.label = label
        self.cause = cause
        message = label if cause is None else f"{label}: {cause}"
        super().__init__(message)


@dataclass(slots=True)
class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status."""

    command: Sequence[str]
    returncode: int
    stderr: str | None = None

    def __str__(self) -> str:
        message = f"{format_command(self.command)} exited with status {self.returncode}"
        if self.stderr:
            stderr = self.stderr.strip()
            if stderr:
                message = f"{message}\n{stderr}"
        return message


def format_command(command: Sequence[str]) -> str:
    """Render a subprocess command for display or logging."""

    return " ".join(shlex.quote(part) for part in command)


def _merge_env(env: Mapping[str, str] | None) -> Mapping[str, str] | None:
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


class CommandRunner:
    """Execute external commands with optional dry-run support."""

    def __init__(self, *, dry_run: bool = False, env: Mapping[str, str] | None = None):
        self.dry_run = dry_run
        self.env: dict[str, str] = dict(env or {})

    def with_env(self, extra: Mapping[str, str]) -> "CommandRunner":
        merged = dict(self.env)
        merged.update(extra)
        return CommandRunner(dry_run=self.dry_run, env=merged)

    def run(self, command: Sequence[str]) -> None:
        self._execute(command)

    def capture(self, command: Sequence[str]) -> str:
        return self._execute(command, capture_output=True)

    def _execute(self, command: Sequence[str], *, capture_output: bool = False) -> str:
        printable = format_command(command)
        if self.dry_run:
            log(f"DRY-RUN: {printable}")
            return ""
        result = subprocess.run(
            list(command),
            env=_merge_env(self.env) if self.env else None,
            check=False,
            text=True,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE,
        )
        if result.returncode != 0:
            raise CommandError(command, result.returncode, stderr=result.stderr)
        if capture_output:
            return (result.stdout or "").strip()
        return ""


@dataclass(slots=True)
class Step:
    """A labelled unit of work inside a provisioning pipeline."""

    label: str
    action: Callable[[], object]


@dataclass(slots=True)
class StepResult:
    """Outcome of a pipeline: success, or the first failing step and its cause."""

    label: str | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        if self.ok:
            return "ok"
        return f"{self.label}: {self.error}"

    def raise_for_failure(self) -> None:
        if not self.ok:
            raise ProvisionError(self.label or "step", self.error)


def run_pipeline(steps: Iterable[Step]) -> StepResult:
    """Run ``steps`` in order and stop at the first one that fails.

    Steps that already ran are left as they are; nothing is rolled back.
    """

    for step in steps:
        log(step.label)
        try:
            step.action()
        except (CommandError, ProvisionError, OSError) as exc:
            return StepResult(label=step.label, error=exc)
    return StepResult()


__all__ = [
    "CommandError",
    "CommandRunner",
    "ProvisionError",
    "Step",
    "StepResult",
    "format_command",
    "run_pipeline",
]
