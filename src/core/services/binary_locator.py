"""Resolve the installed location of the acquisition tool.

Resolution is repeated for every operation; nothing is cached because the tool
may be installed or removed between calls.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Sequence

from core.config import AppSettings
from core.domain.errors import ErrorKind
from core.domain.models import Failure

LOGGER = logging.getLogger(__name__)


class BinaryLocator:
    """PATH lookup first, then a fixed, ordered list of well-known locations."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._settings = settings or AppSettings()
        self._which = which

    @property
    def candidates(self) -> Sequence[Path]:
        return tuple(self._settings.tool_candidates)

    def locate(self) -> Path | Failure:
        found = self._which(self._settings.tool_name)
        if found:
            LOGGER.debug("Using %s from PATH: %s", self._settings.tool_name, found)
            return Path(found)

        for candidate in self.candidates:
            if candidate.is_file() and os.access(candidate, os.X_OK):
                LOGGER.debug("Using %s at %s", self._settings.tool_name, candidate)
                return candidate

        tried = ", ".join(str(c) for c in self.candidates)
        return Failure.of(
            ErrorKind.TOOL_NOT_FOUND,
            f"{self._settings.tool_name} not found on PATH or at: {tried}",
            tried=[str(c) for c in self.candidates],
        )

    def is_installed(self) -> bool:
        return not isinstance(self.locate(), Failure)
