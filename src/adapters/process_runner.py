"""Subprocess adapters.

Responsibility:
- Run external commands under a bounded timeout and always hand back the
  captured stdout/stderr, even for non-zero exits and killed processes.
- Materialize tool scripts as scoped temp files with a unique name per call.

Nothing here interprets the tool's text; that is the classifier's job.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from core.domain.models import ExecutionResult, ScriptSpec
from core.interfaces.runner import CommandRunner

LOGGER = logging.getLogger(__name__)


def _decode(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class SubprocessCommandRunner:
    """`CommandRunner` backed by `subprocess.run` (no shell)."""

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        input_text: str | None = None,
    ) -> ExecutionResult:
        args = [str(a) for a in argv]
        started = time.monotonic()
        LOGGER.debug("exec %s (timeout=%ss)", args[0], timeout)
        try:
            proc = subprocess.run(
                args,
                input=input_text,
                stdin=subprocess.DEVNULL if input_text is None else None,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            elapsed = time.monotonic() - started
            LOGGER.warning("%s killed after %.1fs (timeout %ss)", args[0], elapsed, timeout)
            return ExecutionResult(
                exit_code=None,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                elapsed_seconds=elapsed,
                timed_out=True,
            )
        except FileNotFoundError as exc:
            return ExecutionResult(
                error=str(exc),
                missing_executable=True,
                elapsed_seconds=time.monotonic() - started,
            )
        except OSError as exc:
            return ExecutionResult(error=str(exc), elapsed_seconds=time.monotonic() - started)

        return ExecutionResult(
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            elapsed_seconds=time.monotonic() - started,
        )


@contextmanager
def temp_script(script: ScriptSpec, *, directory: Path | None = None) -> Iterator[Path]:
    """Write `script` to a uniquely named file and delete it on every exit path.

    The file holds the account secret, so it is created with 0600 permissions.
    """

    fd, raw_path = tempfile.mkstemp(
        prefix=f"acprov-{script.kind.value}-",
        suffix=".txt",
        dir=str(directory) if directory else None,
    )
    path = Path(raw_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(script.render())
        os.chmod(path, 0o600)
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove temp script %s: %s", path, exc)


class ToolScriptRunner:
    """`ScriptRunner`: `<tool> +runscript <tempfile>`."""

    def __init__(
        self,
        commands: CommandRunner | None = None,
        *,
        script_dir: Path | None = None,
    ) -> None:
        self._commands = commands or SubprocessCommandRunner()
        self._script_dir = script_dir

    def run_script(self, tool: Path, script: ScriptSpec, *, timeout: float) -> ExecutionResult:
        LOGGER.debug("%s script:\n%s", script.kind.value, script.redacted())
        try:
            with temp_script(script, directory=self._script_dir) as path:
                return self._commands.run([str(tool), "+runscript", str(path)], timeout=timeout)
        except OSError as exc:
            # Disk full / unwritable temp dir while materializing the script.
            return ExecutionResult(error=f"could not write tool script: {exc}")


class RsyncCopier:
    """`TreeCopier` using `rsync -a` (resumable, handles multi-GB trees)."""

    def __init__(self, commands: CommandRunner | None = None) -> None:
        self._commands = commands or SubprocessCommandRunner()

    def copy_tree(
        self,
        source: Path,
        target: Path,
        *,
        exclude: Sequence[str] = (),
        timeout: float,
    ) -> ExecutionResult:
        argv = ["rsync", "-a", f"{source}/", f"{target}/"]
        argv.extend(f"--exclude={pattern}" for pattern in exclude)
        return self._commands.run(argv, timeout=timeout)


class LocalCopier:
    """`TreeCopier` using `shutil.copytree` for hosts without rsync.

    The timeout is accepted for interface parity but not enforced.
    """

    def copy_tree(
        self,
        source: Path,
        target: Path,
        *,
        exclude: Sequence[str] = (),
        timeout: float,
    ) -> ExecutionResult:
        started = time.monotonic()
        ignore = shutil.ignore_patterns(*exclude) if exclude else None
        try:
            shutil.copytree(source, target, ignore=ignore, dirs_exist_ok=True, symlinks=True)
        except (OSError, shutil.Error) as exc:
            return ExecutionResult(
                exit_code=1,
                stderr=str(exc),
                elapsed_seconds=time.monotonic() - started,
            )
        return ExecutionResult(exit_code=0, elapsed_seconds=time.monotonic() - started)


def default_copier(commands: CommandRunner | None = None) -> RsyncCopier | LocalCopier:
    if shutil.which("rsync"):
        return RsyncCopier(commands)
    LOGGER.info("rsync not found on PATH; falling back to in-process copy")
    return LocalCopier()
