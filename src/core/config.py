"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without leaking into the CLI.
- Lets adapters (process, remote cache, HTTP) read timeouts and paths consistently.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no extra dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "acprov"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "acprov"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "acprov"
    return Path.home() / ".config" / "acprov"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str]) -> Path:
    """Write/update variables in the user's global .env file."""

    env_path = get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# acprov user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Application-wide settings.

    Every timeout lives here so the orchestrator never hardcodes one; the
    ranges follow the tool's behavior (seconds for a session probe, hours for
    the bulk secondary transfer).
    """

    model_config = SettingsConfigDict(
        env_prefix="ACPROV_",
        extra="ignore",
        case_sensitive=False,
        # Project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Acquisition tool
    tool_name: str = Field(
        default="steamcmd",
        min_length=1,
        description="Executable name looked up on PATH.",
    )
    tool_candidates: list[Path] = Field(
        default_factory=lambda: [
            Path("/usr/games/steamcmd"),
            Path("/usr/lib/games/steam/steamcmd"),
        ],
        description="Ordered fallback locations when PATH lookup fails.",
    )
    tool_home: Path = Field(
        default_factory=lambda: Path.home() / "Steam",
        description="Tool-local state directory (download cache, appcache).",
    )
    tool_link_dir: Path = Field(
        default_factory=lambda: Path.home() / ".steam",
        description="Directory where the tool expects `root`/`steam` symlinks.",
    )
    tool_extra_state_dirs: list[Path] = Field(
        default_factory=lambda: [Path.home() / ".local" / "share" / "Steam"],
        description="Extra tool-local directories removed on uninstall.",
    )
    tool_package: str = Field(default="steamcmd", description="System package name.")
    use_sudo: bool = Field(
        default=True,
        description="Prefix package-manager commands with `sudo`.",
    )
    script_dir: Path | None = Field(
        default=None,
        description="Directory for temporary tool scripts (system temp dir if unset).",
    )

    # Payloads
    primary_app_id: int = Field(default=302550, description="Dedicated server app id.")
    secondary_app_id: int = Field(default=244210, description="Base game app id.")
    license_app_id: int = Field(
        default=244210,
        description="App id whose license is requested before the primary fetch.",
    )
    secondary_platform: str = Field(
        default="windows",
        description="Platform forced for the secondary payload.",
    )
    secondary_dir_name: str = Field(
        default="assettocorsa",
        description="Directory name the tool uses under steamapps/common.",
    )
    artifact_name: str = Field(default="acServer", description="Primary executable.")
    artifact_alt_name: str = Field(
        default="acServer.exe",
        description="Alternate-platform executable name.",
    )
    asset_root_name: str = Field(default="content", description="Asset subtree name.")
    server_root_name: str = Field(default="server", description="Server subtree name.")
    asset_classes: tuple[str, str] = Field(
        default=("cars", "tracks"),
        description="Asset class subdirectories under the asset subtree.",
    )

    # Remote cache mirror
    cache_host: str = Field(default="192.168.1.70", min_length=1)
    cache_user: str = Field(default="root", min_length=1)
    cache_path: str = Field(default="/opt/steam-cache/ac-dedicated-server", min_length=2)
    cache_connect_timeout: int = Field(default=5, ge=1, le=120)

    # Timeouts (seconds)
    probe_timeout_seconds: float = Field(default=15.0, gt=0)
    verify_timeout_seconds: float = Field(default=30.0, gt=0)
    init_timeout_seconds: float = Field(default=60.0, gt=0)
    install_timeout_seconds: float = Field(default=600.0, gt=0)
    fetch_primary_timeout_seconds: float = Field(default=600.0, gt=0)
    fetch_secondary_timeout_seconds: float = Field(default=7200.0, gt=0)
    copy_timeout_seconds: float = Field(default=600.0, gt=0)
    cache_check_timeout_seconds: float = Field(default=10.0, gt=0)
    cache_copy_timeout_seconds: float = Field(default=3600.0, gt=0)
    version_timeout_seconds: float = Field(default=10.0, gt=0)

    # Self-update check
    update_repo_owner: str = Field(default="Brewsker", min_length=1)
    update_repo_name: str = Field(default="ac-server-manager", min_length=1)
    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout per HTTP request (seconds).",
    )
    user_agent: str = Field(default="acprov/0.1", min_length=1)

    log_level: str = Field(default="INFO", description="Root log level for the CLI.")
