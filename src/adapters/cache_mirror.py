"""Fast path: provision from a pre-populated mirror host over SSH/rsync.

A cache miss is an expected outcome, so every remote failure degrades to
`CacheDescriptor(exists=False, error=...)` instead of raising.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from adapters.process_runner import SubprocessCommandRunner
from core.config import AppSettings
from core.domain.models import CacheDescriptor, ExecutionResult
from core.interfaces.runner import CommandRunner

LOGGER = logging.getLogger(__name__)

EXISTS_TOKEN = "exists"
MISSING_TOKEN = "missing"


class CacheMirror:
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        commands: CommandRunner | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._commands = commands or SubprocessCommandRunner()

    @property
    def remote_path(self) -> str:
        return self._settings.cache_path.rstrip("/")

    def _target(self, host: str) -> str:
        return f"{self._settings.cache_user}@{host}"

    def _ssh(self, host: str, remote_command: str) -> ExecutionResult:
        argv = [
            "ssh",
            "-o",
            f"ConnectTimeout={self._settings.cache_connect_timeout}",
            "-o",
            "BatchMode=yes",
            self._target(host),
            remote_command,
        ]
        return self._commands.run(argv, timeout=self._settings.cache_check_timeout_seconds)

    def exists(self, host: str | None = None) -> bool:
        return self.describe(host, with_stats=False).exists

    def describe(self, host: str | None = None, *, with_stats: bool = True) -> CacheDescriptor:
        host = host or self._settings.cache_host
        path = self.remote_path
        quoted = shlex.quote(path)
        artifact = shlex.quote(self._settings.artifact_name)

        check = self._ssh(
            host,
            f"test -f {quoted}/{artifact} && echo {EXISTS_TOKEN} || echo {MISSING_TOKEN}",
        )
        if check.error or check.timed_out:
            return CacheDescriptor(
                host=host,
                path=path,
                error=check.error or "cache check timed out",
            )
        if check.stdout.strip() != EXISTS_TOKEN:
            descriptor = CacheDescriptor(host=host, path=path)
            if check.exit_code not in (0, None) and check.stderr.strip():
                descriptor.error = check.stderr.strip()
            return descriptor

        if not with_stats:
            return CacheDescriptor(host=host, path=path, exists=True)

        stats = self._ssh(host, f"du -sh {quoted} && find {quoted} -type f | wc -l")
        try:
            lines = stats.stdout.strip().splitlines()
            size = lines[0].split("\t")[0].strip()
            file_count = int(lines[1].strip())
        except (IndexError, ValueError):
            LOGGER.warning("Unexpected cache stats output from %s: %r", host, stats.stdout[:200])
            return CacheDescriptor(
                host=host,
                path=path,
                error=stats.error or stats.stderr.strip() or "could not read cache size",
            )
        return CacheDescriptor(host=host, path=path, exists=True, size=size, file_count=file_count)

    def mirror(self, install_path: Path, host: str | None = None) -> ExecutionResult:
        """Bulk remote-to-local copy of the cached tree into `install_path`."""

        host = host or self._settings.cache_host
        install_path.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Copying from cache %s to %s", host, install_path)
        argv = [
            "rsync",
            "-avz",
            "--progress",
            "-e",
            f"ssh -o ConnectTimeout={self._settings.cache_connect_timeout} -o BatchMode=yes",
            f"{self._target(host)}:{self.remote_path}/",
            f"{install_path}/",
        ]
        return self._commands.run(argv, timeout=self._settings.cache_copy_timeout_seconds)
