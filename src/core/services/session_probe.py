"""Check whether a cached tool session is still usable without a secret.

Fail-closed: anything other than an explicit success marker (timeouts, IO
errors, unexpected exceptions from an injected runner) means "no session".
"""

from __future__ import annotations

import logging

from core.config import AppSettings
from core.domain.models import AcquisitionRequest, Failure, Identity, OperationKind
from core.interfaces.runner import ScriptRunner
from core.services.binary_locator import BinaryLocator
from core.services.output_classifier import session_is_usable
from core.services.script_builder import ScriptBuilder

LOGGER = logging.getLogger(__name__)


class SessionProbe:
    def __init__(
        self,
        runner: ScriptRunner,
        *,
        locator: BinaryLocator,
        builder: ScriptBuilder | None = None,
        settings: AppSettings | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._runner = runner
        self._locator = locator
        self._builder = builder or ScriptBuilder(self._settings)

    def has_session(self, username: str) -> bool:
        try:
            tool = self._locator.locate()
            if isinstance(tool, Failure):
                return False
            request = AcquisitionRequest(
                kind=OperationKind.PROBE_SESSION,
                identity=Identity(username=username),
            )
            script = self._builder.build(request)
            result = self._runner.run_script(
                tool, script, timeout=self._settings.probe_timeout_seconds
            )
        except Exception as exc:  # noqa: BLE001 - any failure means no usable session
            LOGGER.warning("Session check failed: %s", exc)
            return False

        if result.timed_out or result.error:
            LOGGER.info("Session probe for %s did not complete; assuming no session", username)
            return False
        usable = session_is_usable(result.output)
        LOGGER.info("Cached session for %s: %s", username, "valid" if usable else "absent")
        return usable
