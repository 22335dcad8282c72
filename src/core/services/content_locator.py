"""Find where a secondary payload actually landed.

The tool leaves the tree in one of three shapes depending on how far the
transfer got: fully committed under `steamapps/common/<name>`, still staged
under `steamapps/downloading/<appid>`, or flat in the install root.
"""

from __future__ import annotations

import logging
from pathlib import Path

from core.config import AppSettings
from core.domain.models import ContentLocation, ContentSearch, ServerLocation

LOGGER = logging.getLogger(__name__)


class ContentLocator:
    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()

    def layout_roots(self, install_path: Path) -> list[Path]:
        """Candidate payload roots in priority order."""

        s = self._settings
        return [
            install_path / "steamapps" / "common" / s.secondary_dir_name,
            install_path / "steamapps" / "downloading" / str(s.secondary_app_id),
            install_path,
        ]

    def content_candidates(self, install_path: Path) -> list[Path]:
        return [root / self._settings.asset_root_name for root in self.layout_roots(install_path)]

    def server_candidates(self, install_path: Path) -> list[Path]:
        return [root / self._settings.server_root_name for root in self.layout_roots(install_path)]

    def locate_content(self, install_path: Path) -> ContentSearch:
        tried = self.content_candidates(install_path)
        for index, candidate in enumerate(tried):
            if all((candidate / name).is_dir() for name in self._settings.asset_classes):
                LOGGER.info("Found content at %s (layout %d)", candidate, index)
                return ContentSearch(
                    location=ContentLocation(base_path=candidate, layout_index=index),
                    tried=tried,
                )
        return ContentSearch(location=None, tried=tried)

    def locate_server(self, install_path: Path) -> ServerLocation | None:
        names = (self._settings.artifact_alt_name, self._settings.artifact_name)
        for index, candidate in enumerate(self.server_candidates(install_path)):
            for name in names:
                if (candidate / name).is_file():
                    LOGGER.info("Found server files at %s (%s)", candidate, name)
                    return ServerLocation(base_path=candidate, layout_index=index, executable=name)
        return None

    def locate_game_root(self, install_path: Path) -> Path | None:
        """First existing tool-managed game tree (the flat layout is excluded)."""

        for root in self.layout_roots(install_path)[:2]:
            if root.is_dir():
                return root
        return None
