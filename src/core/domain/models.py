"""Domain models (Pydantic v2).

These models describe *what* an acquisition is, not *how* the external tool is
driven. Adapters produce and consume them; the CLI only renders them.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from core.domain.errors import DEFAULT_REMEDIATION, ErrorKind


ANONYMOUS_USER = "anonymous"


class OperationKind(str, Enum):
    """Script flavors the acquisition tool can be driven with."""

    PROBE_SESSION = "probe-session"
    VERIFY_CREDENTIALS = "verify-credentials"
    FETCH_PRIMARY = "fetch-primary"
    FETCH_SECONDARY = "fetch-secondary"

    @property
    def is_fetch(self) -> bool:
        return self in (OperationKind.FETCH_PRIMARY, OperationKind.FETCH_SECONDARY)


class AssetSelector(str, Enum):
    """Which asset classes a destructive content operation targets."""

    CARS = "cars"
    TRACKS = "tracks"
    BOTH = "both"

    def classes(self, available: tuple[str, ...]) -> list[str]:
        if self is AssetSelector.BOTH:
            return list(available)
        return [name for name in available if name == self.value]


class Identity(BaseModel):
    """Account used to log in to the acquisition tool."""

    username: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Account name, or `anonymous` for credential-less flows.",
    )
    secret: str | None = Field(
        default=None,
        repr=False,
        description="Password. Interpolated literally into the tool script.",
    )
    guard_code: str | None = Field(
        default=None,
        repr=False,
        description="One-time second-factor code.",
    )

    @field_validator("username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("username must not be blank")
        return value

    @field_validator("secret", "guard_code")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        # The guard code is trimmed; the secret is kept byte-for-byte.
        return value if value.strip() else None

    @property
    def is_anonymous(self) -> bool:
        return self.username.lower() == ANONYMOUS_USER

    @property
    def guard(self) -> str | None:
        return self.guard_code.strip() if self.guard_code else None


class AcquisitionRequest(BaseModel):
    """One invocation of the acquisition tool."""

    kind: OperationKind
    identity: Identity
    install_path: Path | None = Field(
        default=None,
        description="Target directory; required for fetch operations.",
    )
    use_cached_session: bool = Field(
        default=False,
        description="Log in with the username only (session found by the probe).",
    )

    @model_validator(mode="after")
    def _require_install_path(self) -> "AcquisitionRequest":
        if self.kind.is_fetch:
            if self.install_path is None or not str(self.install_path).strip():
                raise ValueError(f"{self.kind.value} requires a non-empty install path")
        return self


class ScriptSpec(BaseModel):
    """Ordered directive lines consumed by the tool's `+runscript`."""

    kind: OperationKind
    directives: list[str] = Field(default_factory=list)
    secret: str | None = Field(default=None, repr=False, exclude=True)

    @model_validator(mode="after")
    def _guard_precedes_login(self) -> "ScriptSpec":
        guard_idx = _first_index(self.directives, "set_steam_guard_code ")
        login_idx = _first_index(self.directives, "login ")
        if guard_idx is not None and (login_idx is None or guard_idx > login_idx):
            raise ValueError("guard code directive must precede the login directive")
        return self

    def render(self) -> str:
        return "\n".join(self.directives) + "\n"

    def redacted(self) -> str:
        """Rendered script with the secret masked, for logs."""

        text = self.render()
        if self.secret:
            text = text.replace(self.secret, "********")
        return text


def _first_index(lines: list[str], prefix: str) -> int | None:
    for idx, line in enumerate(lines):
        if line.startswith(prefix):
            return idx
    return None


class ExecutionResult(BaseModel):
    """Raw result of one blocking external-process call."""

    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    elapsed_seconds: float = 0.0
    timed_out: bool = False
    error: str | None = Field(
        default=None,
        description="OS-level failure starting the process (missing binary, EACCES...).",
    )
    missing_executable: bool = False

    @property
    def output(self) -> str:
        return f"{self.stdout}\n{self.stderr}"

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and self.error is None


class Success(BaseModel):
    status: Literal["success"] = "success"
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    status: Literal["failure"] = "failure"
    kind: ErrorKind
    message: str
    remediation: str
    excerpt: str | None = Field(
        default=None,
        description="Truncated raw tool output for diagnostics.",
    )
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def of(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        remediation: str | None = None,
        excerpt: str | None = None,
        **details: Any,
    ) -> "Failure":
        return cls(
            kind=kind,
            message=message,
            remediation=remediation or DEFAULT_REMEDIATION[kind],
            excerpt=excerpt,
            details=details,
        )


ClassifiedOutcome = Annotated[Union[Success, Failure], Field(discriminator="status")]


class ContentLocation(BaseModel):
    """Where a payload's asset subtree actually landed."""

    base_path: Path
    layout_index: int = Field(..., ge=0, description="Ordinal of the matching candidate.")


class ContentSearch(BaseModel):
    """Result of probing the candidate layouts (found / not-found)."""

    location: ContentLocation | None = None
    tried: list[Path] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.location is not None


class ServerLocation(BaseModel):
    base_path: Path
    layout_index: int = Field(..., ge=0)
    executable: str


class ArtifactCheck(BaseModel):
    """Whether the expected primary artifact exists (found / not-found)."""

    path: Path
    found: bool
    version: str = "Unknown"


class CacheDescriptor(BaseModel):
    """State of the pre-populated remote mirror."""

    host: str
    path: str
    exists: bool = False
    size: str | None = None
    file_count: int | None = None
    error: str | None = None


class TransplantSummary(BaseModel):
    """Outcome of merging a secondary payload into a target installation."""

    server_installed: bool = False
    server_source: Path | None = None
    executable_found: str | None = None
    counts_before: dict[str, int] = Field(default_factory=dict)
    counts_after: dict[str, int] = Field(default_factory=dict)
