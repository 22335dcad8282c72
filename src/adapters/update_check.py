"""Self-update check against the project's GitHub releases."""

from __future__ import annotations

import logging
from importlib import metadata

import httpx
from pydantic import BaseModel, Field

from adapters.http_client import build_client
from core.config import AppSettings

LOGGER = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
FALLBACK_VERSION = "0.1.0"


class ReleaseAsset(BaseModel):
    name: str
    size: int = 0
    download_url: str | None = None


class UpdateStatus(BaseModel):
    current_version: str
    latest_version: str | None = None
    update_available: bool = False
    release_url: str | None = None
    release_notes: str | None = None
    published_at: str | None = None
    assets: list[ReleaseAsset] = Field(default_factory=list)
    message: str | None = None
    error: str | None = None


def current_version() -> str:
    try:
        return metadata.version("acprov")
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION


def _parts(version: str) -> list[int]:
    parts: list[int] = []
    for chunk in version.strip().lstrip("v").split("."):
        digits = "".join(ch for ch in chunk if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """1 if v1 > v2, -1 if v1 < v2, 0 if equal (missing parts count as 0)."""

    p1, p2 = _parts(v1), _parts(v2)
    for i in range(max(len(p1), len(p2))):
        a = p1[i] if i < len(p1) else 0
        b = p2[i] if i < len(p2) else 0
        if a > b:
            return 1
        if a < b:
            return -1
    return 0


def check_for_updates(
    settings: AppSettings | None = None,
    *,
    client: httpx.Client | None = None,
    current: str | None = None,
) -> UpdateStatus:
    settings = settings or AppSettings()
    current = current or current_version()
    url = (
        f"{GITHUB_API}/repos/{settings.update_repo_owner}/"
        f"{settings.update_repo_name}/releases/latest"
    )

    owns_client = client is None
    client = client or build_client(
        settings, extra_headers={"Accept": "application/vnd.github.v3+json"}
    )
    try:
        resp = client.get(url)
    except httpx.HTTPError as exc:
        LOGGER.error("Failed to check for updates: %s", exc)
        return UpdateStatus(current_version=current, error=str(exc))
    finally:
        if owns_client:
            client.close()

    if resp.status_code == 404:
        return UpdateStatus(
            current_version=current,
            latest_version=current,
            message="No releases found on GitHub",
        )
    if resp.status_code != 200:
        return UpdateStatus(current_version=current, error=f"GitHub API returned {resp.status_code}")

    release = resp.json()
    latest = str(release.get("tag_name") or "").lstrip("v") or current
    return UpdateStatus(
        current_version=current,
        latest_version=latest,
        update_available=compare_versions(latest, current) > 0,
        release_url=release.get("html_url"),
        release_notes=release.get("body"),
        published_at=release.get("published_at"),
        assets=[
            ReleaseAsset(
                name=a.get("name", ""),
                size=a.get("size") or 0,
                download_url=a.get("browser_download_url"),
            )
            for a in release.get("assets") or []
            if isinstance(a, dict)
        ],
    )
