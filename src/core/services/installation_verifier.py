"""Confirm a primary payload landed and tidy what the tool left behind."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from core.config import AppSettings
from core.domain.errors import ErrorKind
from core.domain.models import ArtifactCheck, ClassifiedOutcome, Failure, Success
from core.interfaces.runner import CommandRunner

LOGGER = logging.getLogger(__name__)

UNKNOWN_VERSION = "Unknown"


class InstallationVerifier:
    def __init__(self, commands: CommandRunner, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()
        self._commands = commands

    def artifact_path(self, install_path: Path) -> Path:
        return install_path / self._settings.artifact_name

    def check(self, install_path: Path) -> ArtifactCheck:
        """Non-mutating presence check (found / not-found) plus version."""

        artifact = self.artifact_path(install_path)
        if not artifact.is_file():
            return ArtifactCheck(path=artifact, found=False)
        return ArtifactCheck(path=artifact, found=True, version=self.read_version(artifact))

    def verify(self, install_path: Path) -> ClassifiedOutcome:
        """Artifact must exist; mark it executable; report the version."""

        artifact = self.artifact_path(install_path)
        if not artifact.is_file():
            return Failure.of(
                ErrorKind.UNKNOWN_TOOL_FAILURE,
                f"Download completed but {artifact.name} was not found at {artifact}",
                remediation="Retry the download; if it keeps happening, run SteamCMD "
                "manually with `app_update` and inspect its output.",
                path=str(artifact),
            )

        mode = artifact.stat().st_mode
        os.chmod(artifact, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        pruned = self.prune_empty_asset_dirs(install_path)
        version = self.read_version(artifact)
        return Success(
            message="Installation verified",
            details={
                "path": str(install_path),
                "version": version,
                "pruned": [str(p) for p in pruned],
            },
        )

    def read_version(self, artifact: Path) -> str:
        result = self._commands.run(
            [str(artifact), "-v"], timeout=self._settings.version_timeout_seconds
        )
        if result.error or result.timed_out:
            LOGGER.warning("Could not get %s version: %s", artifact.name, result.error or "timeout")
            return UNKNOWN_VERSION
        first_line = next((ln.strip() for ln in result.output.splitlines() if ln.strip()), "")
        return first_line or UNKNOWN_VERSION

    def prune_empty_asset_dirs(self, install_path: Path) -> list[Path]:
        """Remove empty per-item directories the tool creates speculatively.

        Only direct children of each asset class directory are considered, and
        only when they contain nothing at all.
        """

        removed: list[Path] = []
        asset_root = install_path / self._settings.asset_root_name
        for asset_class in self._settings.asset_classes:
            class_dir = asset_root / asset_class
            if not class_dir.is_dir():
                continue
            try:
                children = sorted(class_dir.iterdir())
            except OSError as exc:
                LOGGER.warning("Could not clean %s directories: %s", asset_class, exc)
                continue
            for child in children:
                if child.is_symlink() or not child.is_dir():
                    continue
                if any(child.iterdir()):
                    continue
                child.rmdir()
                removed.append(child)
                LOGGER.info("Removed empty %s directory: %s", asset_class, child.name)
        return removed
