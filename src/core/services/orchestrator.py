"""Acquisition and provisioning orchestration.

Each public method is one stateless operation consumed by the outer surface
(CLI today, an HTTP route layer tomorrow). Acquisition operations walk

    Idle -> LocatingStrategy -> Authenticating (optional) -> Transferring
         -> Verifying -> Done

with failures in Authenticating/Transferring routed through ClassifyingFailure
to Error. Destructive operations use the smaller PathSafetyCheck -> Delete
machine; the gate is never retried or bypassed.

Every step returns a value or a `Failure`; nothing here raises for expected
outcomes. There is no internal parallelism: one blocking external call at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, Field, ValidationError

from adapters.cache_mirror import CacheMirror
from adapters.process_runner import SubprocessCommandRunner, ToolScriptRunner, default_copier
from adapters.tool_installer import ToolInstaller
from core.config import AppSettings
from core.domain.errors import ErrorKind, UnsafeDestructivePathError
from core.domain.models import (
    ANONYMOUS_USER,
    AcquisitionRequest,
    ArtifactCheck,
    AssetSelector,
    CacheDescriptor,
    ClassifiedOutcome,
    ExecutionResult,
    Failure,
    Identity,
    OperationKind,
    Success,
)
from core.interfaces.runner import CommandRunner, ScriptRunner, TreeCopier
from core.services.binary_locator import BinaryLocator
from core.services.content_locator import ContentLocator
from core.services.content_transplanter import ContentTransplanter
from core.services.disk import count_subdirectories, directory_size, format_size, remove_tree
from core.services.installation_verifier import InstallationVerifier
from core.services.output_classifier import classify, matched_rule
from core.services.path_safety import ensure_safe_destructive_path
from core.services.script_builder import ScriptBuilder
from core.services.session_probe import SessionProbe

LOGGER = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "Idle"
    LOCATING_STRATEGY = "LocatingStrategy"
    AUTHENTICATING = "Authenticating"
    TRANSFERRING = "Transferring"
    VERIFYING = "Verifying"
    CLASSIFYING_FAILURE = "ClassifyingFailure"
    DONE = "Done"
    ERROR = "Error"
    PATH_SAFETY_CHECK = "PathSafetyCheck"
    DELETE = "Delete"


@dataclass
class OrchestratorHooks:
    """Optional callbacks for UI layers (spinners, status lines)."""

    state_changed: Callable[[str, OrchestratorState], None] | None = None


@dataclass
class _Flow:
    operation: str
    hooks: OrchestratorHooks
    states: list[OrchestratorState] = field(default_factory=lambda: [OrchestratorState.IDLE])

    def enter(self, state: OrchestratorState) -> None:
        LOGGER.debug("[%s] %s -> %s", self.operation, self.states[-1].value, state.value)
        self.states.append(state)
        if self.hooks.state_changed:
            self.hooks.state_changed(self.operation, state)

    def error(self, failure: Failure, *, classified: bool = False) -> Failure:
        if classified:
            self.enter(OrchestratorState.CLASSIFYING_FAILURE)
        self.enter(OrchestratorState.ERROR)
        LOGGER.error("[%s] %s: %s", self.operation, failure.kind.value, failure.message)
        return failure

    def done(self, outcome: Success) -> Success:
        self.enter(OrchestratorState.DONE)
        LOGGER.info("[%s] %s", self.operation, outcome.message)
        return outcome


class SecondaryStatus(BaseModel):
    """Whether a secondary payload is downloaded and ready for extraction."""

    installed: bool = False
    path: Path | None = None
    content_path: Path | None = None
    asset_counts: dict[str, int] = Field(default_factory=dict)
    size: str | None = None
    server_found: bool = False


class Orchestrator:
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        commands: CommandRunner | None = None,
        script_runner: ScriptRunner | None = None,
        locator: BinaryLocator | None = None,
        cache: CacheMirror | None = None,
        installer: ToolInstaller | None = None,
        copier: TreeCopier | None = None,
        hooks: OrchestratorHooks | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        s = self._settings
        self._commands = commands or SubprocessCommandRunner()
        self._runner = script_runner or ToolScriptRunner(self._commands, script_dir=s.script_dir)
        self._locator = locator or BinaryLocator(s)
        self._cache = cache or CacheMirror(s, commands=self._commands)
        self._installer = installer or ToolInstaller(s, commands=self._commands)
        self._builder = ScriptBuilder(s)
        self._probe = SessionProbe(self._runner, locator=self._locator, builder=self._builder, settings=s)
        self._verifier = InstallationVerifier(self._commands, s)
        self._content = ContentLocator(s)
        self._transplanter = ContentTransplanter(copier or default_copier(self._commands), s)
        self._hooks = hooks or OrchestratorHooks()

    def _flow(self, operation: str) -> _Flow:
        return _Flow(operation=operation, hooks=self._hooks)

    # ------------------------------------------------------------------
    # Tool
    # ------------------------------------------------------------------

    def check_tool_presence(self) -> bool:
        return self._locator.is_installed()

    def locate_tool(self) -> Path | Failure:
        return self._locator.locate()

    def install_tool(self) -> ClassifiedOutcome:
        return self._installer.install()

    def uninstall_tool(self) -> ClassifiedOutcome:
        return self._installer.uninstall()

    # ------------------------------------------------------------------
    # Primary payload
    # ------------------------------------------------------------------

    def install(
        self,
        install_path: str | Path,
        username: str | None = None,
        secret: str | None = None,
        guard_code: str | None = None,
        *,
        prefer_cache: bool = True,
        cache_host: str | None = None,
    ) -> ClassifiedOutcome:
        """Provision the primary payload, from the cache mirror when it has it."""

        flow = self._flow("install")
        flow.enter(OrchestratorState.LOCATING_STRATEGY)
        outcome: ClassifiedOutcome | None = None
        if prefer_cache:
            descriptor = self._cache.describe(cache_host, with_stats=False)
            if descriptor.exists:
                LOGGER.info("Cache hit on %s; using the mirror fast path", descriptor.host)
                outcome = self.copy_from_cache(install_path, cache_host)
            else:
                LOGGER.info("Cache miss on %s; falling back to SteamCMD", descriptor.host)
        if outcome is None:
            outcome = self.fetch_primary(install_path, username or ANONYMOUS_USER, secret, guard_code)
        flow.enter(OrchestratorState.DONE if isinstance(outcome, Success) else OrchestratorState.ERROR)
        return outcome

    def fetch_primary(
        self,
        install_path: str | Path,
        username: str,
        secret: str | None = None,
        guard_code: str | None = None,
    ) -> ClassifiedOutcome:
        flow = self._flow("fetch-primary")
        flow.enter(OrchestratorState.LOCATING_STRATEGY)

        identity = _identity(username, secret, guard_code)
        if isinstance(identity, Failure):
            return flow.error(identity)
        tool = self._locator.locate()
        if isinstance(tool, Failure):
            return flow.error(tool)
        LOGGER.info("Using steamcmd at: %s", tool)
        self._installer.initialize(tool)

        use_cached = False
        if not identity.is_anonymous:
            flow.enter(OrchestratorState.AUTHENTICATING)
            if not identity.secret:
                use_cached = self._probe.has_session(identity.username)
                if not use_cached:
                    return flow.error(_credentials_required())

        request = _request(OperationKind.FETCH_PRIMARY, identity, install_path, use_cached)
        if isinstance(request, Failure):
            return flow.error(request)
        made = _make_dir(request.install_path)
        if isinstance(made, Failure):
            return flow.error(made)

        flow.enter(OrchestratorState.TRANSFERRING)
        LOGGER.info("Starting dedicated server download...")
        result = self._runner.run_script(
            tool,
            self._builder.build(request),
            timeout=self._settings.fetch_primary_timeout_seconds,
        )
        failure = self._interpret(result, request)
        if failure is not None:
            return flow.error(self._after_failure(failure, request.install_path), classified=True)

        flow.enter(OrchestratorState.VERIFYING)
        verified = self._verifier.verify(request.install_path)
        if isinstance(verified, Failure):
            return flow.error(verified)
        verified.message = "AC Dedicated Server downloaded successfully"
        verified.details["strategy"] = "tool"
        return flow.done(verified)

    def check_primary_installed(self, install_path: str | Path) -> ArtifactCheck:
        return self._verifier.check(Path(install_path))

    def check_remote_cache(self, host: str | None = None) -> CacheDescriptor:
        return self._cache.describe(host)

    def copy_from_cache(self, install_path: str | Path, host: str | None = None) -> ClassifiedOutcome:
        flow = self._flow("copy-from-cache")
        flow.enter(OrchestratorState.LOCATING_STRATEGY)
        target = Path(install_path)
        if not str(install_path).strip():
            return flow.error(Failure.of(ErrorKind.UNKNOWN_TOOL_FAILURE, "install path is required"))

        flow.enter(OrchestratorState.TRANSFERRING)
        try:
            result = self._cache.mirror(target, host)
        except OSError as exc:
            return flow.error(_io_failure(f"Could not create {target}", exc))
        if not result.ok:
            return flow.error(_cache_copy_failure(result), classified=True)

        flow.enter(OrchestratorState.VERIFYING)
        verified = self._verifier.verify(target)
        if isinstance(verified, Failure):
            verified.message = (
                f"Copy from cache completed but {self._settings.artifact_name} "
                f"was not found at {self._verifier.artifact_path(target)}"
            )
            return flow.error(verified)
        verified.message = "AC Dedicated Server copied from cache successfully"
        verified.details["strategy"] = "cache"
        verified.details["host"] = host or self._settings.cache_host
        return flow.done(verified)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def verify_credentials(
        self,
        username: str,
        secret: str | None = None,
        guard_code: str | None = None,
    ) -> ClassifiedOutcome:
        flow = self._flow("verify-credentials")
        flow.enter(OrchestratorState.LOCATING_STRATEGY)
        identity = _identity(username, secret, guard_code)
        if isinstance(identity, Failure):
            return flow.error(identity)
        if not identity.secret:
            return flow.error(_credentials_required())
        tool = self._locator.locate()
        if isinstance(tool, Failure):
            return flow.error(tool)

        # The tool creates its symlinks here on first login.
        try:
            self._settings.tool_link_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not create %s: %s", self._settings.tool_link_dir, exc)

        flow.enter(OrchestratorState.AUTHENTICATING)
        request = AcquisitionRequest(kind=OperationKind.VERIFY_CREDENTIALS, identity=identity)
        result = self._runner.run_script(
            tool,
            self._builder.build(request),
            timeout=self._settings.verify_timeout_seconds,
        )
        failure = self._interpret(result, request)
        if failure is not None:
            return flow.error(failure, classified=True)
        return flow.done(
            Success(
                message="Steam credentials verified successfully. Session saved for future downloads.",
                details={"username": identity.username, "session_cached": True},
            )
        )

    # ------------------------------------------------------------------
    # Secondary payload
    # ------------------------------------------------------------------

    def fetch_secondary(
        self,
        install_path: str | Path,
        username: str,
        secret: str | None = None,
        guard_code: str | None = None,
    ) -> ClassifiedOutcome:
        flow = self._flow("fetch-secondary")
        flow.enter(OrchestratorState.LOCATING_STRATEGY)
        identity = _identity(username, secret, guard_code)
        if isinstance(identity, Failure):
            return flow.error(identity)
        tool = self._locator.locate()
        if isinstance(tool, Failure):
            return flow.error(tool)

        flow.enter(OrchestratorState.AUTHENTICATING)
        has_session = False
        if not identity.is_anonymous:
            has_session = self._probe.has_session(identity.username)
            if has_session:
                LOGGER.info("Using cached Steam session for %s", identity.username)
            elif not identity.secret:
                return flow.error(_credentials_required())
            else:
                LOGGER.info("No cached session, using provided credentials")

        request = _request(OperationKind.FETCH_SECONDARY, identity, install_path, has_session)
        if isinstance(request, Failure):
            return flow.error(request)
        made = _make_dir(request.install_path)
        if isinstance(made, Failure):
            return flow.error(made)

        flow.enter(OrchestratorState.TRANSFERRING)
        LOGGER.info(
            "Downloading base game (app %s) to %s; this may take 10-60 minutes",
            self._settings.secondary_app_id,
            request.install_path,
        )
        result = self._runner.run_script(
            tool,
            self._builder.build(request),
            timeout=self._settings.fetch_secondary_timeout_seconds,
        )
        failure = self._interpret(result, request)
        if failure is not None:
            return flow.error(self._after_failure(failure, request.install_path), classified=True)

        flow.enter(OrchestratorState.VERIFYING)
        search = self._content.locate_content(request.install_path)
        if search.location is None:
            tried = ", ".join(str(p) for p in search.tried)
            return flow.error(
                Failure.of(
                    ErrorKind.UNKNOWN_TOOL_FAILURE,
                    f"Game download failed or incomplete. Content not found in: {tried}",
                    remediation="Retry the download; partial downloads resume where they stopped.",
                    tried=[str(p) for p in search.tried],
                )
            )
        counts = self._asset_counts(search.location.base_path)
        return flow.done(
            Success(
                message="AC base game downloaded successfully",
                details={
                    "path": str(request.install_path),
                    "content_path": str(search.location.base_path),
                    "layout_index": search.location.layout_index,
                    "asset_counts": counts,
                    "session_cached": has_session,
                },
            )
        )

    def check_secondary_downloaded(self, install_path: str | Path) -> SecondaryStatus:
        path = Path(install_path)
        search = self._content.locate_content(path)
        if search.location is None:
            return SecondaryStatus(installed=False, path=path)
        return SecondaryStatus(
            installed=True,
            path=path,
            content_path=search.location.base_path,
            asset_counts=self._asset_counts(search.location.base_path),
            size=format_size(directory_size(path)),
            server_found=self._content.locate_server(path) is not None,
        )

    def extract_assets(
        self,
        secondary_path: str | Path,
        target_asset_path: str | Path,
    ) -> ClassifiedOutcome:
        flow = self._flow("extract")
        source = Path(secondary_path)
        target = Path(target_asset_path)
        LOGGER.info("Extracting server + content from %s to %s", source, target)

        flow.enter(OrchestratorState.LOCATING_STRATEGY)
        search = self._content.locate_content(source)
        if search.location is None:
            tried = ", ".join(str(p) for p in search.tried)
            return flow.error(
                Failure.of(
                    ErrorKind.UNKNOWN_TOOL_FAILURE,
                    f"Could not find game content in {source}. Tried: {tried}",
                    remediation="Download the base game first (`acprov fetch-game`).",
                    tried=[str(p) for p in search.tried],
                )
            )
        server = self._content.locate_server(source)
        if server is None:
            LOGGER.warning(
                "Could not find server files in %s. Tried: %s",
                source,
                ", ".join(str(p) for p in self._content.server_candidates(source)),
            )

        flow.enter(OrchestratorState.TRANSFERRING)
        try:
            outcome = self._transplanter.transplant(search.location, server, target)
        except OSError as exc:
            return flow.error(_io_failure("Failed to extract server/content", exc))
        if isinstance(outcome, Failure):
            return flow.error(outcome)
        outcome.details["content_path"] = str(search.location.base_path)
        outcome.details["layout_index"] = search.location.layout_index
        return flow.done(outcome)

    def cleanup_secondary(self, secondary_path: str | Path) -> ClassifiedOutcome:
        """Remove the downloaded game, preserving its `server/` directory."""

        flow = self._flow("cleanup-secondary")
        path = self._gate(flow, secondary_path)
        if isinstance(path, Failure):
            return path
        if not path.exists():
            return flow.error(_missing_dir(path))

        flow.enter(OrchestratorState.DELETE)
        before = directory_size(path)
        try:
            game_root = self._content.locate_game_root(path)
            if game_root is not None:
                LOGGER.info("Cleaning up %s, preserving server directory", game_root)
                for entry in sorted(game_root.iterdir()):
                    if entry.name == self._settings.server_root_name:
                        continue
                    remove_tree(entry)
                for manifest in (path / "steamapps").glob("appmanifest_*.acf"):
                    manifest.unlink(missing_ok=True)
            else:
                LOGGER.warning("Could not find standard game structure, removing entire directory")
                remove_tree(path)
        except OSError as exc:
            return flow.error(_io_failure("Failed to cleanup", exc))

        after = directory_size(path) if path.exists() else 0
        freed = format_size(max(before - after, 0))
        return flow.done(
            Success(
                message=f"Removed AC base game files (freed {freed}, preserved server directory)",
                details={"freed_space": freed, "preserved_server": game_root is not None},
            )
        )

    # ------------------------------------------------------------------
    # Destructive primary/content operations
    # ------------------------------------------------------------------

    def uninstall_primary(self, install_path: str | Path) -> ClassifiedOutcome:
        flow = self._flow("uninstall-primary")
        path = self._gate(flow, install_path)
        if isinstance(path, Failure):
            return path
        if not path.exists():
            return flow.error(_missing_dir(path))

        flow.enter(OrchestratorState.DELETE)
        freed = format_size(directory_size(path))
        try:
            remove_tree(path)
        except OSError as exc:
            return flow.error(_io_failure("Failed to uninstall AC server", exc))
        return flow.done(
            Success(
                message=f"AC Dedicated Server uninstalled (freed {freed})",
                details={"freed_space": freed},
            )
        )

    def delete_assets(
        self,
        content_path: str | Path,
        selector: AssetSelector | str = AssetSelector.BOTH,
    ) -> ClassifiedOutcome:
        flow = self._flow("delete-assets")
        path = self._gate(flow, content_path)
        if isinstance(path, Failure):
            return path
        try:
            selector = AssetSelector(selector)
        except ValueError:
            choices = ", ".join(s.value for s in AssetSelector)
            return flow.error(
                Failure.of(
                    ErrorKind.UNKNOWN_TOOL_FAILURE,
                    f"Unknown content type {selector!r}; nothing was deleted",
                    remediation=f"Pass one of: {choices}.",
                    selector=str(selector),
                )
            )

        flow.enter(OrchestratorState.DELETE)
        results: dict[str, dict[str, object]] = {}
        for asset_class in selector.classes(self._settings.asset_classes):
            folder = path / asset_class
            if not folder.is_dir():
                LOGGER.info("Skipped %s: not a directory", folder)
                results[asset_class] = {"deleted": 0, "freed_space": "0", "error": "not found"}
                continue
            try:
                freed = format_size(directory_size(folder))
                count = sum(1 for _ in folder.iterdir())
                remove_tree(folder)
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                LOGGER.warning("Skipped %s: %s", folder, exc)
                results[asset_class] = {"deleted": 0, "freed_space": "0", "error": str(exc)}
                continue
            results[asset_class] = {"deleted": count, "freed_space": freed}
            LOGGER.info("Deleted %d items from %s, freed %s", count, folder, freed)

        return flow.done(
            Success(
                message=f"Deleted {selector.value} content successfully",
                details={"results": results},
            )
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _gate(self, flow: _Flow, path: str | Path) -> Path | Failure:
        flow.enter(OrchestratorState.PATH_SAFETY_CHECK)
        try:
            return ensure_safe_destructive_path(path)
        except UnsafeDestructivePathError as exc:
            return flow.error(
                Failure.of(ErrorKind.UNSAFE_DESTRUCTIVE_PATH, str(exc), path=exc.path)
            )

    def _interpret(self, result: ExecutionResult, request: AcquisitionRequest) -> Failure | None:
        """Map one tool run to `None` (carry on) or a typed failure."""

        if result.error:
            if result.missing_executable:
                return Failure.of(ErrorKind.TOOL_NOT_FOUND, f"SteamCMD could not be started: {result.error}")
            return Failure.of(
                ErrorKind.UNKNOWN_TOOL_FAILURE,
                f"SteamCMD could not be run: {result.error}",
                remediation="Check disk space and permissions for the temp directory and the tool.",
            )

        guard_supplied = bool(request.identity.guard) and not request.use_cached_session
        outcome = classify(
            result.output, request.kind, guard_code_supplied=guard_supplied, exit_code=result.exit_code
        )
        LOGGER.info(
            "%s classified by rule %s (exit=%s, %.1fs)",
            request.kind.value,
            matched_rule(
                result.output,
                request.kind,
                guard_code_supplied=guard_supplied,
                exit_code=result.exit_code,
            )
            or "none",
            result.exit_code,
            result.elapsed_seconds,
        )

        if result.timed_out:
            if isinstance(outcome, Failure) and outcome.kind is not ErrorKind.UNKNOWN_TOOL_FAILURE:
                return outcome
            if isinstance(outcome, Success) and request.kind is OperationKind.VERIFY_CREDENTIALS:
                # The login already went through; the tool stalled afterwards.
                LOGGER.warning("SteamCMD was killed after a successful login; session is saved")
                return None
            return Failure.of(
                ErrorKind.TIMEOUT,
                f"SteamCMD did not finish within {result.elapsed_seconds:.0f}s",
                excerpt=outcome.excerpt if isinstance(outcome, Failure) else None,
            )

        if isinstance(outcome, Success):
            return None
        if (
            request.kind.is_fetch
            and outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE
            and result.exit_code == 0
        ):
            # Clean exit without login markers; the verification phase decides.
            return None
        return outcome

    def _after_failure(self, failure: Failure, install_path: Path) -> Failure:
        if failure.kind is not ErrorKind.DOWNLOAD_CORRUPTED:
            return failure
        LOGGER.warning("Corrupted download detected; clearing SteamCMD cache and %s", install_path)
        try:
            self._installer.clear_download_cache()
            remove_tree(ensure_safe_destructive_path(install_path))
        except (OSError, UnsafeDestructivePathError) as exc:
            LOGGER.error("Failed to cleanup corrupted cache: %s", exc)
            failure.details["cache_cleared"] = False
        else:
            failure.details["cache_cleared"] = True
        return failure

    def _asset_counts(self, content_path: Path) -> dict[str, int]:
        return {
            name: count_subdirectories(content_path / name)
            for name in self._settings.asset_classes
        }


def _identity(username: str | None, secret: str | None, guard_code: str | None) -> Identity | Failure:
    try:
        return Identity(username=username or "", secret=secret, guard_code=guard_code)
    except ValidationError:
        return _credentials_required()


def _request(
    kind: OperationKind,
    identity: Identity,
    install_path: str | Path,
    use_cached_session: bool,
) -> AcquisitionRequest | Failure:
    if not str(install_path).strip():
        return Failure.of(
            ErrorKind.UNKNOWN_TOOL_FAILURE,
            "installPath is required",
            remediation="Pass the directory the payload should be installed to.",
        )
    return AcquisitionRequest(
        kind=kind,
        identity=identity,
        install_path=Path(install_path),
        use_cached_session=use_cached_session,
    )


def _credentials_required() -> Failure:
    return Failure.of(
        ErrorKind.CREDENTIALS_REQUIRED,
        "Steam credentials required. Verify your Steam credentials first.",
    )


def _make_dir(path: Path) -> None | Failure:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return _io_failure(f"Could not create {path}", exc)
    return None


def _missing_dir(path: Path) -> Failure:
    return Failure.of(
        ErrorKind.UNKNOWN_TOOL_FAILURE,
        f"Directory does not exist: {path}",
        remediation="Check the path; nothing was deleted.",
    )


def _io_failure(message: str, exc: OSError) -> Failure:
    return Failure.of(
        ErrorKind.UNKNOWN_TOOL_FAILURE,
        f"{message}: {exc}",
        remediation="Check disk space and permissions on the target directory.",
    )


def _cache_copy_failure(result: ExecutionResult) -> Failure:
    if result.timed_out:
        return Failure.of(ErrorKind.TIMEOUT, "Copy from cache timed out")
    return Failure.of(
        ErrorKind.UNKNOWN_TOOL_FAILURE,
        f"Copy from cache failed (exit {result.exit_code})",
        remediation="Check that the cache host is reachable over SSH, or download with SteamCMD instead.",
        excerpt=(result.error or result.stderr).strip()[:1000] or None,
    )
