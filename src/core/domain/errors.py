"""Error taxonomy for acquisition and provisioning.

Every failure the orchestrator returns carries one of these kinds. The kinds are
values, not exceptions: they travel inside a `Failure` model. The only raised
error in the core is `UnsafeDestructivePathError`, which is converted into a
`Failure` at the orchestrator boundary.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Typed failure categories returned to orchestration callers."""

    TOOL_NOT_FOUND = "ToolNotFound"
    CREDENTIALS_REQUIRED = "CredentialsRequired"
    GUARD_CODE_REQUIRED = "GuardCodeRequired"
    INVALID_PASSWORD = "InvalidPassword"
    INVALID_GUARD_CODE = "InvalidGuardCode"
    EXPIRED_GUARD_CODE = "ExpiredGuardCode"
    GUARD_CODE_MISMATCH = "GuardCodeMismatch"
    RATE_LIMITED = "RateLimited"
    LOGIN_FAILED = "LoginFailed"
    OWNERSHIP_MISSING = "OwnershipMissing"
    DOWNLOAD_CORRUPTED = "DownloadCorrupted"
    DOWNLOAD_BLOCKED_MIDWAY = "DownloadBlockedMidway"
    DOWNLOAD_BLOCKED_TRANSIENT = "DownloadBlockedTransient"
    CONFIGURATION_INCOMPLETE = "ConfigurationIncomplete"
    TIMEOUT = "Timeout"
    UNSAFE_DESTRUCTIVE_PATH = "UnsafeDestructivePath"
    UNKNOWN_TOOL_FAILURE = "UnknownToolFailure"


DEFAULT_REMEDIATION: dict[ErrorKind, str] = {
    ErrorKind.TOOL_NOT_FOUND: (
        "Install SteamCMD first (`acprov install-tool` or `sudo apt-get install steamcmd`)."
    ),
    ErrorKind.CREDENTIALS_REQUIRED: (
        "Provide a Steam username and password, or run `acprov verify-login` once to "
        "cache a session for this account."
    ),
    ErrorKind.GUARD_CODE_REQUIRED: (
        "Enter the current Steam Guard code (email or mobile authenticator) and verify "
        "the login again."
    ),
    ErrorKind.INVALID_PASSWORD: (
        "Check the password. If Steam Guard is enabled on the account, also supply the "
        "current guard code."
    ),
    ErrorKind.INVALID_GUARD_CODE: "The Steam Guard code was rejected. Request a fresh code.",
    ErrorKind.EXPIRED_GUARD_CODE: "The Steam Guard code expired. Generate a new code and retry.",
    ErrorKind.GUARD_CODE_MISMATCH: (
        "The code does not match what Steam expects. Make sure you use the right type "
        "of code (email vs mobile app)."
    ),
    ErrorKind.RATE_LIMITED: "Too many login attempts. Wait a few minutes before retrying.",
    ErrorKind.LOGIN_FAILED: (
        "Credentials were rejected. Verify the password, get a fresh Steam Guard code and "
        "check that the account has no restrictions."
    ),
    ErrorKind.OWNERSHIP_MISSING: (
        "The Steam account must own Assetto Corsa (app 244210) directly, not through "
        "Family Sharing."
    ),
    ErrorKind.DOWNLOAD_CORRUPTED: (
        "The local download cache was cleared automatically. Retry the download."
    ),
    ErrorKind.DOWNLOAD_BLOCKED_MIDWAY: (
        "Wait 24 hours before retrying, try another account that owns the game, or "
        "contact Steam Support about account restrictions."
    ),
    ErrorKind.DOWNLOAD_BLOCKED_TRANSIENT: (
        "Retry in a few minutes. If it stops at the same percentage every time, the "
        "account may be restricted on Steam's side."
    ),
    ErrorKind.CONFIGURATION_INCOMPLETE: (
        "Initialize SteamCMD once with `steamcmd +login anonymous +quit`, then retry."
    ),
    ErrorKind.TIMEOUT: "The operation timed out. Check the network connection and retry.",
    ErrorKind.UNSAFE_DESTRUCTIVE_PATH: (
        "Refusing to delete this path. Pass the exact installation directory instead."
    ),
    ErrorKind.UNKNOWN_TOOL_FAILURE: (
        "Inspect the tool output excerpt; retry, or run SteamCMD manually to reproduce."
    ),
}


class UnsafeDestructivePathError(ValueError):
    """Raised by the path-safety gate before any filesystem mutation."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Refusing to delete suspicious path: {path}")
        self.path = path
