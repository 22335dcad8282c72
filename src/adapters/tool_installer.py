"""Install, initialize and remove the acquisition tool on Debian/Ubuntu hosts."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from adapters.process_runner import SubprocessCommandRunner
from core.config import AppSettings
from core.domain.errors import ErrorKind
from core.domain.models import ClassifiedOutcome, ExecutionResult, Failure, Success
from core.interfaces.runner import CommandRunner
from core.services.disk import directory_size, format_size, remove_tree

LOGGER = logging.getLogger(__name__)

DEBCONF_SELECTIONS = (
    'steam steam/question select "I AGREE"\n'
    'steam steam/license note ""\n'
)
LIB32_PACKAGES = ("lib32gcc-s1", "lib32gcc1")


class ToolInstaller:
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        commands: CommandRunner | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._commands = commands or SubprocessCommandRunner()

    def _privileged(self, *argv: str) -> list[str]:
        return ["sudo", *argv] if self._settings.use_sudo else list(argv)

    def _run(self, argv: Sequence[str], *, input_text: str | None = None) -> ExecutionResult:
        return self._commands.run(
            argv, timeout=self._settings.install_timeout_seconds, input_text=input_text
        )

    @staticmethod
    def _failed(step: str, result: ExecutionResult, *, action: str = "install") -> Failure:
        if result.timed_out:
            return Failure.of(ErrorKind.TIMEOUT, f"{step} timed out")
        return Failure.of(
            ErrorKind.UNKNOWN_TOOL_FAILURE,
            f"Failed to {action} SteamCMD: {step} failed",
            remediation=f"Run the {action} manually with sudo and check the package sources.",
            excerpt=(result.error or result.stderr or result.stdout).strip()[:1000] or None,
        )

    def install(self) -> ClassifiedOutcome:
        LOGGER.info("Installing SteamCMD...")
        pkg = self._settings.tool_package
        steps: list[tuple[str, list[str], str | None]] = [
            ("add i386 architecture", self._privileged("dpkg", "--add-architecture", "i386"), None),
            ("apt-get update", self._privileged("apt-get", "update"), None),
            ("accept license", self._privileged("debconf-set-selections"), DEBCONF_SELECTIONS),
        ]
        for step, argv, stdin in steps:
            result = self._run(argv, input_text=stdin)
            if not result.ok:
                return self._failed(step, result)

        result = ExecutionResult()
        for lib in LIB32_PACKAGES:
            result = self._run(self._privileged("apt-get", "install", "-y", pkg, lib))
            if result.ok:
                break
            LOGGER.warning("apt-get install %s %s failed, trying next library package", pkg, lib)
        if not result.ok:
            return self._failed("apt-get install", result)

        LOGGER.info("Initializing SteamCMD...")
        tool = self._settings.tool_candidates[0] if self._settings.tool_candidates else Path(pkg)
        init = self._commands.run([str(tool), "+quit"], timeout=self._settings.init_timeout_seconds)
        if not init.ok:
            LOGGER.warning("SteamCMD first run returned %s (may be normal)", init.exit_code)
        return Success(message="SteamCMD installed successfully")

    def initialize(self, tool: Path) -> bool:
        """Create the tool's local state links and do one anonymous login.

        Best-effort: returns False on any problem but never fails the caller.
        """

        s = self._settings
        ok = True
        try:
            s.tool_link_dir.mkdir(parents=True, exist_ok=True)
            for name in ("root", "steam"):
                link = s.tool_link_dir / name
                if link.is_symlink() or link.exists():
                    continue
                link.symlink_to(s.tool_home)
        except OSError as exc:
            LOGGER.warning("SteamCMD initialization warning (may be normal): %s", exc)
            ok = False

        result = self._commands.run(
            [str(tool), "+login", "anonymous", "+quit"], timeout=s.init_timeout_seconds
        )
        if not result.ok:
            LOGGER.warning(
                "SteamCMD initialization run returned %s (may be normal)",
                "timeout" if result.timed_out else result.exit_code,
            )
            ok = False
        else:
            LOGGER.info("SteamCMD initialized successfully")
        return ok

    def state_dirs(self) -> list[Path]:
        s = self._settings
        return [s.tool_home, s.tool_link_dir, *s.tool_extra_state_dirs]

    def uninstall(self) -> ClassifiedOutcome:
        LOGGER.info("Uninstalling SteamCMD...")
        for argv in (
            self._privileged("apt-get", "remove", "-y", self._settings.tool_package),
            self._privileged("apt-get", "autoremove", "-y"),
        ):
            result = self._run(argv)
            if not result.ok:
                return self._failed(" ".join(argv), result, action="uninstall")

        freed = 0
        removed: list[str] = []
        failed: dict[str, str] = {}
        for state_dir in self.state_dirs():
            if not (state_dir.exists() or state_dir.is_symlink()):
                LOGGER.info("Skipped %s (doesn't exist)", state_dir)
                continue
            try:
                size = directory_size(state_dir) if not state_dir.is_symlink() else 0
                remove_tree(state_dir)
            except OSError as exc:
                LOGGER.warning("Could not remove %s: %s", state_dir, exc)
                failed[str(state_dir)] = str(exc)
                continue
            freed += size
            removed.append(str(state_dir))
            LOGGER.info("Removed %s", state_dir)

        if failed:
            return Failure.of(
                ErrorKind.UNKNOWN_TOOL_FAILURE,
                "SteamCMD package removed, but some of its data directories could not be deleted",
                remediation="Delete the listed directories manually (they may need sudo).",
                removed=removed,
                failed=failed,
                freed_space=format_size(freed),
            )
        return Success(
            message="SteamCMD uninstalled successfully",
            details={"removed": removed, "freed_space": format_size(freed)},
        )

    def clear_download_cache(self) -> None:
        """Drop partial downloads and app metadata after a corrupted transfer."""

        home = self._settings.tool_home
        for cache_dir in (home / "steamapps" / "downloading", home / "appcache"):
            if not cache_dir.is_dir():
                continue
            for entry in cache_dir.iterdir():
                remove_tree(entry)
            LOGGER.info("Cleared %s", cache_dir)
