from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

from adapters.process_runner import LocalCopier
from core.config import AppSettings
from core.domain.models import ExecutionResult, ScriptSpec
from core.services.binary_locator import BinaryLocator
from core.services.orchestrator import Orchestrator

TOOL_PATH = "/usr/games/steamcmd"


class FakeCommandRunner:
    """Records every argv and answers through `responder`."""

    def __init__(self, responder: Callable[[list[str]], ExecutionResult] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self._responder = responder or (lambda argv: ExecutionResult(exit_code=0))

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        input_text: str | None = None,
    ) -> ExecutionResult:
        args = [str(a) for a in argv]
        self.calls.append(args)
        self.inputs.append(input_text)
        return self._responder(args)


class FakeScriptRunner:
    """Returns queued results in order; `on_run` simulates the tool's side effects."""

    def __init__(
        self,
        *results: ExecutionResult,
        on_run: Callable[[ScriptSpec], None] | None = None,
    ) -> None:
        self.results = list(results)
        self.scripts: list[ScriptSpec] = []
        self.on_run = on_run

    def run_script(self, tool: Path, script: ScriptSpec, *, timeout: float) -> ExecutionResult:
        self.scripts.append(script)
        if self.on_run is not None:
            self.on_run(script)
        if self.results:
            return self.results.pop(0)
        return ExecutionResult(exit_code=0)

    @property
    def kinds(self) -> list[str]:
        return [s.kind.value for s in self.scripts]


def tool_output(text: str, exit_code: int = 0) -> ExecutionResult:
    return ExecutionResult(exit_code=exit_code, stdout=text)


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        _env_file=None,
        tool_candidates=[],
        tool_home=tmp_path / "Steam",
        tool_link_dir=tmp_path / ".steam",
        tool_extra_state_dirs=[tmp_path / ".local-share-Steam"],
        use_sudo=False,
    )


@pytest.fixture
def commands() -> FakeCommandRunner:
    def respond(argv: list[str]) -> ExecutionResult:
        if argv[-1] == "-v":
            return ExecutionResult(exit_code=0, stdout="AssettoCorsa Server v1.16\n")
        return ExecutionResult(exit_code=0)

    return FakeCommandRunner(respond)


@pytest.fixture
def make_orchestrator(settings: AppSettings, commands: FakeCommandRunner):
    def build(
        script_runner: FakeScriptRunner | None = None,
        *,
        tool_installed: bool = True,
        command_runner: FakeCommandRunner | None = None,
    ) -> Orchestrator:
        which = (lambda name: TOOL_PATH) if tool_installed else (lambda name: None)
        return Orchestrator(
            settings,
            commands=command_runner or commands,
            script_runner=script_runner or FakeScriptRunner(),
            locator=BinaryLocator(settings, which=which),
            copier=LocalCopier(),
        )

    return build


def make_tree(root: Path, *relative: str) -> None:
    """Create directories (trailing `/`) or small files under `root`."""

    for rel in relative:
        target = root / rel
        if rel.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("x" * 16, encoding="utf-8")
