"""Contracts for external-process execution.

Why Protocol:
- Structural contract without rigid inheritance.
- Lets the orchestrator run against subprocess-backed adapters in production and
  in-memory fakes in tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from core.domain.models import ExecutionResult, ScriptSpec


@runtime_checkable
class CommandRunner(Protocol):
    """Runs one argv to completion, never raising for process-level failures."""

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        input_text: str | None = None,
    ) -> ExecutionResult:
        ...


@runtime_checkable
class ScriptRunner(Protocol):
    """Runs the acquisition tool against a rendered script."""

    def run_script(self, tool: Path, script: ScriptSpec, *, timeout: float) -> ExecutionResult:
        ...


@runtime_checkable
class TreeCopier(Protocol):
    """Merges a directory tree into another (contents of `source` into `target`)."""

    def copy_tree(
        self,
        source: Path,
        target: Path,
        *,
        exclude: Sequence[str] = (),
        timeout: float,
    ) -> ExecutionResult:
        ...
