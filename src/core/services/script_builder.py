"""Render the directive script the acquisition tool executes.

The tool reads the script in its own line-oriented language, not through a
shell: secrets are interpolated literally and must never be quoted or escaped.
Ordering rules:
- `force_install_dir` precedes `login`.
- `set_steam_guard_code` precedes `login`.
- `quit` is always the last line.
"""

from __future__ import annotations

from core.config import AppSettings
from core.domain.models import AcquisitionRequest, Identity, OperationKind, ScriptSpec

SHUTDOWN_ON_FAILURE = "@ShutdownOnFailedCommand 1"
NO_PASSWORD_PROMPT = "@NoPromptForPassword 1"
QUIT = "quit"


class ScriptBuilder:
    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()

    def build(self, request: AcquisitionRequest) -> ScriptSpec:
        builders = {
            OperationKind.PROBE_SESSION: self._probe_session,
            OperationKind.VERIFY_CREDENTIALS: self._verify_credentials,
            OperationKind.FETCH_PRIMARY: self._fetch_primary,
            OperationKind.FETCH_SECONDARY: self._fetch_secondary,
        }
        directives = builders[request.kind](request)
        directives.append(QUIT)
        return ScriptSpec(kind=request.kind, directives=directives, secret=request.identity.secret)

    def _probe_session(self, request: AcquisitionRequest) -> list[str]:
        return [SHUTDOWN_ON_FAILURE, NO_PASSWORD_PROMPT, f"login {request.identity.username}"]

    def _verify_credentials(self, request: AcquisitionRequest) -> list[str]:
        # No @NoPromptForPassword here: with it the tool does not persist the
        # session, and persisting it is the point of verifying.
        lines = [SHUTDOWN_ON_FAILURE]
        lines.extend(_login_lines(request.identity, cached=False))
        lines.append(f"app_status {self._settings.secondary_app_id}")
        return lines

    def _fetch_primary(self, request: AcquisitionRequest) -> list[str]:
        lines = [SHUTDOWN_ON_FAILURE, NO_PASSWORD_PROMPT]
        lines.append(f"force_install_dir {request.install_path}")
        lines.extend(_login_lines(request.identity, cached=request.use_cached_session))
        lines.append(f"app_license_request {self._settings.license_app_id}")
        lines.append(f"app_update {self._settings.primary_app_id}")
        return lines

    def _fetch_secondary(self, request: AcquisitionRequest) -> list[str]:
        lines = [
            SHUTDOWN_ON_FAILURE,
            NO_PASSWORD_PROMPT,
            f"@sSteamCmdForcePlatformType {self._settings.secondary_platform}",
            f"force_install_dir {request.install_path}",
        ]
        lines.extend(_login_lines(request.identity, cached=request.use_cached_session))
        lines.append(f"app_update {self._settings.secondary_app_id} validate")
        return lines


def _login_lines(identity: Identity, *, cached: bool) -> list[str]:
    if cached or identity.is_anonymous:
        return [f"login {identity.username}"]

    lines: list[str] = []
    if identity.guard:
        lines.append(f"set_steam_guard_code {identity.guard}")
    if identity.secret:
        lines.append(f"login {identity.username} {identity.secret}")
    else:
        lines.append(f"login {identity.username}")
    return lines
