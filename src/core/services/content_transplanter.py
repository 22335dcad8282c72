"""Merge a located secondary payload into a target server installation."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from core.config import AppSettings
from core.domain.errors import ErrorKind
from core.domain.models import (
    ClassifiedOutcome,
    ContentLocation,
    Failure,
    ServerLocation,
    Success,
    TransplantSummary,
)
from core.interfaces.runner import TreeCopier
from core.services.disk import count_subdirectories

LOGGER = logging.getLogger(__name__)


class ContentTransplanter:
    def __init__(self, copier: TreeCopier, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()
        self._copier = copier

    def transplant(
        self,
        content: ContentLocation,
        server: ServerLocation | None,
        target_asset_path: Path,
    ) -> ClassifiedOutcome:
        """Copy server files (minus assets) and each asset class into the target.

        `target_asset_path` is the target's asset subtree (e.g. `/opt/acserver/content`);
        server files go to its parent. A missing server source is tolerated.
        """

        s = self._settings
        server_root = target_asset_path.parent
        summary = TransplantSummary()

        if server is not None:
            LOGGER.info("Copying server files from %s to %s", server.base_path, server_root)
            server_root.mkdir(parents=True, exist_ok=True)
            result = self._copier.copy_tree(
                server.base_path,
                server_root,
                exclude=(s.asset_root_name,),
                timeout=s.copy_timeout_seconds,
            )
            if not result.ok:
                return self._copy_failure("server files", result.stderr, result.timed_out)
            summary.server_installed = True
            summary.server_source = server.base_path
            summary.executable_found = self._verify_executable(server_root)
        else:
            LOGGER.warning("No server files found in the secondary payload; copying content only")

        for asset_class in s.asset_classes:
            source = content.base_path / asset_class
            target = target_asset_path / asset_class
            if not source.is_dir():
                return Failure.of(
                    ErrorKind.UNKNOWN_TOOL_FAILURE,
                    f"Source {asset_class} directory disappeared: {source}",
                    remediation="Download the game again before extracting.",
                )
            target.mkdir(parents=True, exist_ok=True)
            summary.counts_before[asset_class] = count_subdirectories(target)
            LOGGER.info("Copying %s...", asset_class)
            result = self._copier.copy_tree(source, target, timeout=s.copy_timeout_seconds)
            if not result.ok:
                return self._copy_failure(asset_class, result.stderr, result.timed_out)
            summary.counts_after[asset_class] = count_subdirectories(target)

        message = (
            "Server and content extracted successfully"
            if summary.server_installed
            else "Content extracted successfully (server files not found)"
        )
        LOGGER.info("Extraction complete: %s", summary.counts_after)
        details = summary.model_dump(mode="json")
        details["asset_counts"] = dict(summary.counts_after)
        return Success(message=message, details=details)

    def _verify_executable(self, server_root: Path) -> str | None:
        alt = server_root / self._settings.artifact_alt_name
        native = server_root / self._settings.artifact_name
        if alt.is_file():
            LOGGER.info("Alternate-platform server executable verified at %s", alt)
            return alt.name
        if native.is_file() and os.access(native, os.X_OK):
            LOGGER.info("Server executable verified at %s", native)
            return native.name
        LOGGER.warning("Server executable not found at %s or %s", alt, native)
        return None

    @staticmethod
    def _copy_failure(what: str, stderr: str, timed_out: bool) -> Failure:
        if timed_out:
            return Failure.of(ErrorKind.TIMEOUT, f"Copying {what} timed out")
        return Failure.of(
            ErrorKind.UNKNOWN_TOOL_FAILURE,
            f"Copying {what} failed",
            remediation="Check free disk space and permissions on the target directory.",
            excerpt=stderr.strip()[:1000] or None,
        )
