"""Turn the acquisition tool's unstructured output into a typed outcome.

The tool's exit code is not a reliable signal, so the captured text is the only
feedback channel. Classification is an ordered table of (predicate, outcome)
pairs evaluated top to bottom; the first match wins. Order is part of the
contract: some markers are substrings of noise emitted in other failure modes
(corrupted transfers also print ownership-like lines), so the corruption rule
sits above every authorization rule.

`classify` is pure: the same (text, kind, guard flag, exit code) always yields
an equal outcome. The exit code is only read by the login rule, and only for
primary fetches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from core.domain.errors import DEFAULT_REMEDIATION, ErrorKind
from core.domain.models import ClassifiedOutcome, Failure, OperationKind, Success

EXCERPT_MAX_CHARS = 1000
LOGIN_SNIPPET_CHARS = 200

CORRUPTION_MARKERS = ("bad chunk", "Unpack failed", "Failed updating depot")
OWNERSHIP_MARKERS = ("No subscription",)
STALL_MARKER = "state is 0x50A"
TRANSFER_STARTED_MARKER = "downloading, progress:"
ACTIVE_CANCEL_MARKER = "state (0x461) stopping"
INVALID_GUARD_MARKER = "Invalid Login Auth Code"
EXPIRED_GUARD_MARKER = "Expired Login Auth Code"
GUARD_MISMATCH_MARKER = "Two Factor Code Mismatch"
GUARD_REQUIRED_MARKERS = (
    "This computer has not been authenticated",
    "Please check your email for the message from Steam",
    "Steam Guard",
    "Two-factor",
    "GUARD",
    "Account Logon Denied",
    "Please login with valid credentials",
)
RATE_LIMIT_MARKERS = ("Rate Limit Exceeded",)
INVALID_PASSWORD_MARKERS = ("Invalid Password",)
LOGIN_FAILURE_MARKERS = ("FAILED login", "Login Failure")
CONFIGURATION_MARKERS = (
    "Missing configuration",
    "failed to create symbolic link",
    "steamconsole.so",
)
SESSION_MARKERS = ("Logged in OK", "Waiting for user info")
# steamcmd exit codes for a refused login; only trusted when no session marker was printed.
LOGIN_FAILURE_EXIT_CODES = (5, 8)

_PROGRESS_RE = re.compile(r"progress: ([\d.]+)")


@dataclass(frozen=True)
class ClassificationContext:
    text: str
    kind: OperationKind
    guard_code_supplied: bool = False
    exit_code: int | None = None

    def has(self, *markers: str) -> bool:
        return any(marker in self.text for marker in markers)


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    matches: Callable[[ClassificationContext], bool]
    outcome: Callable[[ClassificationContext], ClassifiedOutcome]


def _contains(*markers: str) -> Callable[[ClassificationContext], bool]:
    return lambda ctx: ctx.has(*markers)


def excerpt(text: str, limit: int = EXCERPT_MAX_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def _login_snippet(text: str) -> str | None:
    idx = text.rfind("Logging in")
    if idx < 0:
        return None
    return text[idx : idx + LOGIN_SNIPPET_CHARS].strip()


def _needs_reverify(ctx: ClassificationContext) -> bool:
    # The secondary fetch normally logs in from a cached session; auth errors
    # there mean the session is gone.
    return ctx.kind is OperationKind.FETCH_SECONDARY


_REVERIFY_HINT = "Re-verify the Steam credentials (`acprov verify-login`), then retry the download."


def _corrupted(ctx: ClassificationContext) -> Failure:
    return Failure.of(
        ErrorKind.DOWNLOAD_CORRUPTED,
        "The download started but failed on corrupted data from Steam's CDN. "
        "This is a temporary infrastructure issue, not an account problem.",
    )


def _ownership_missing(ctx: ClassificationContext) -> Failure:
    target = "download content" if ctx.kind is OperationKind.FETCH_SECONDARY else (
        "download the dedicated server"
    )
    return Failure.of(
        ErrorKind.OWNERSHIP_MISSING,
        f"The Steam account does not own Assetto Corsa; it is required to {target}.",
    )


def _stalled(ctx: ClassificationContext) -> Failure:
    match = _PROGRESS_RE.search(ctx.text)
    progress = match.group(1) if match else None
    at = f" at {progress}%" if progress else ""

    if not ctx.has(TRANSFER_STARTED_MARKER):
        return Failure.of(
            ErrorKind.OWNERSHIP_MISSING,
            "Steam refused the transfer before it began (state 0x50A): the account "
            "does not own Assetto Corsa.",
        )
    if ctx.has(ACTIVE_CANCEL_MARKER):
        return Failure.of(
            ErrorKind.DOWNLOAD_BLOCKED_MIDWAY,
            f"Steam's servers actively stopped the download{at}. The account "
            "authenticated and owns the game, but the backend is refusing to complete "
            "the transfer.",
            progress=progress,
        )
    return Failure.of(
        ErrorKind.DOWNLOAD_BLOCKED_TRANSIENT,
        f"Steam stopped the download{at} with error 0x50A (CDN/network interruption, "
        "temporary server issue, or Family Sharing).",
        progress=progress,
    )


def _guard_failure(kind: ErrorKind, message: str) -> Callable[[ClassificationContext], Failure]:
    def build(ctx: ClassificationContext) -> Failure:
        remediation = _REVERIFY_HINT if _needs_reverify(ctx) else DEFAULT_REMEDIATION[kind]
        return Failure.of(kind, message, remediation=remediation, excerpt=_login_snippet(ctx.text))

    return build


def _rate_limited(ctx: ClassificationContext) -> Failure:
    return Failure.of(ErrorKind.RATE_LIMITED, "Too many login attempts for this account.")


def _login_refused(ctx: ClassificationContext) -> bool:
    if ctx.has(*INVALID_PASSWORD_MARKERS, *LOGIN_FAILURE_MARKERS):
        return True
    if ctx.kind is not OperationKind.FETCH_PRIMARY or ctx.has(*SESSION_MARKERS):
        return False
    return ctx.exit_code in LOGIN_FAILURE_EXIT_CODES


def _password_or_login(ctx: ClassificationContext) -> Failure:
    reverify = _REVERIFY_HINT if _needs_reverify(ctx) else None
    exit_code_only = not ctx.has(*INVALID_PASSWORD_MARKERS, *LOGIN_FAILURE_MARKERS)
    if (exit_code_only or ctx.has(*INVALID_PASSWORD_MARKERS)) and not ctx.guard_code_supplied:
        return Failure.of(
            ErrorKind.INVALID_PASSWORD,
            "Steam login failed: invalid password, or Steam Guard is required.",
            remediation=reverify,
        )
    return Failure.of(
        ErrorKind.LOGIN_FAILED,
        "Steam login failed: credentials rejected.",
        remediation=reverify,
        excerpt=excerpt(ctx.text, 500),
    )


def _configuration_incomplete(ctx: ClassificationContext) -> Failure:
    return Failure.of(
        ErrorKind.CONFIGURATION_INCOMPLETE,
        "SteamCMD local configuration is missing or its symlinks are broken.",
    )


def _logged_in(ctx: ClassificationContext) -> Success:
    marker = next(m for m in SESSION_MARKERS if m in ctx.text)
    return Success(message="Tool reported a successful login.", details={"marker": marker})


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("corruption", _contains(*CORRUPTION_MARKERS), _corrupted),
    ClassificationRule("no-subscription", _contains(*OWNERSHIP_MARKERS), _ownership_missing),
    ClassificationRule("stalled-transfer", _contains(STALL_MARKER), _stalled),
    ClassificationRule(
        "invalid-guard-code",
        _contains(INVALID_GUARD_MARKER),
        _guard_failure(ErrorKind.INVALID_GUARD_CODE, "Invalid Steam Guard code."),
    ),
    ClassificationRule(
        "expired-guard-code",
        _contains(EXPIRED_GUARD_MARKER),
        _guard_failure(ErrorKind.EXPIRED_GUARD_CODE, "The Steam Guard code has expired."),
    ),
    ClassificationRule(
        "guard-code-mismatch",
        _contains(GUARD_MISMATCH_MARKER),
        _guard_failure(
            ErrorKind.GUARD_CODE_MISMATCH,
            "Steam Guard code required but not provided or incorrect.",
        ),
    ),
    ClassificationRule(
        "guard-code-required",
        _contains(*GUARD_REQUIRED_MARKERS),
        _guard_failure(
            ErrorKind.GUARD_CODE_REQUIRED,
            "Steam Guard authentication is required for this computer.",
        ),
    ),
    ClassificationRule("rate-limited", _contains(*RATE_LIMIT_MARKERS), _rate_limited),
    ClassificationRule(
        "password-or-login",
        _login_refused,
        _password_or_login,
    ),
    ClassificationRule(
        "configuration", _contains(*CONFIGURATION_MARKERS), _configuration_incomplete
    ),
    ClassificationRule("logged-in", _contains(*SESSION_MARKERS), _logged_in),
)


def classify(
    text: str,
    kind: OperationKind,
    *,
    guard_code_supplied: bool = False,
    exit_code: int | None = None,
    rules: tuple[ClassificationRule, ...] = RULES,
) -> ClassifiedOutcome:
    ctx = ClassificationContext(
        text=text, kind=kind, guard_code_supplied=guard_code_supplied, exit_code=exit_code
    )
    for rule in rules:
        if rule.matches(ctx):
            return rule.outcome(ctx)

    return Failure.of(
        ErrorKind.UNKNOWN_TOOL_FAILURE,
        "SteamCMD finished without a recognizable result.",
        excerpt=excerpt(text),
    )


def matched_rule(
    text: str,
    kind: OperationKind,
    *,
    guard_code_supplied: bool = False,
    exit_code: int | None = None,
) -> str | None:
    """Name of the first rule that matches, for logging and tests."""

    ctx = ClassificationContext(
        text=text, kind=kind, guard_code_supplied=guard_code_supplied, exit_code=exit_code
    )
    for rule in RULES:
        if rule.matches(ctx):
            return rule.name
    return None


def session_is_usable(text: str) -> bool:
    return any(marker in text for marker in SESSION_MARKERS)
