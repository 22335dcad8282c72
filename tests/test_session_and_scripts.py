from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.domain.models import AcquisitionRequest, ExecutionResult, Identity, OperationKind, ScriptSpec
from core.services.binary_locator import BinaryLocator
from core.services.script_builder import ScriptBuilder
from core.services.session_probe import SessionProbe

from conftest import TOOL_PATH, FakeScriptRunner, tool_output


def _probe(settings, runner, *, installed=True):
    which = (lambda name: TOOL_PATH) if installed else (lambda name: None)
    return SessionProbe(runner, locator=BinaryLocator(settings, which=which), settings=settings)


class _ExplodingRunner:
    def run_script(self, tool, script, *, timeout):
        raise RuntimeError("boom")


@pytest.mark.parametrize("marker", ["Logged in OK", "Waiting for user info...OK"])
def test_probe_true_only_on_success_markers(settings, marker):
    runner = FakeScriptRunner(tool_output(f"Logging in user 'bob'...\n{marker}"))

    assert _probe(settings, runner).has_session("bob") is True
    assert runner.scripts[0].directives == [
        "@ShutdownOnFailedCommand 1",
        "@NoPromptForPassword 1",
        "login bob",
        "quit",
    ]


def test_probe_false_without_markers(settings):
    runner = FakeScriptRunner(tool_output("Cached credentials not found.\nFAILED login"))

    assert _probe(settings, runner).has_session("bob") is False


def test_probe_false_on_exception(settings):
    assert _probe(settings, _ExplodingRunner()).has_session("bob") is False


def test_probe_false_on_timeout_even_with_marker(settings):
    runner = FakeScriptRunner(ExecutionResult(timed_out=True, stdout="Logged in OK"))

    assert _probe(settings, runner).has_session("bob") is False


def test_probe_false_without_tool(settings):
    runner = FakeScriptRunner()

    assert _probe(settings, runner, installed=False).has_session("bob") is False
    assert runner.scripts == []


def _build(settings, kind, *, username="bob", secret=None, guard=None, path=None, cached=False):
    request = AcquisitionRequest(
        kind=kind,
        identity=Identity(username=username, secret=secret, guard_code=guard),
        install_path=path,
        use_cached_session=cached,
    )
    return ScriptBuilder(settings).build(request)


def test_fetch_primary_script_order(settings, tmp_path):
    script = _build(
        settings,
        OperationKind.FETCH_PRIMARY,
        secret="hunter2",
        guard=" AB12C ",
        path=tmp_path / "acserver",
    )

    assert script.directives == [
        "@ShutdownOnFailedCommand 1",
        "@NoPromptForPassword 1",
        f"force_install_dir {tmp_path / 'acserver'}",
        "set_steam_guard_code AB12C",
        "login bob hunter2",
        "app_license_request 244210",
        "app_update 302550",
        "quit",
    ]
    assert script.render().endswith("quit\n")


def test_fetch_secondary_script_with_cached_session(settings, tmp_path):
    script = _build(
        settings,
        OperationKind.FETCH_SECONDARY,
        secret="ignored",
        path=tmp_path / "game",
        cached=True,
    )

    assert script.directives == [
        "@ShutdownOnFailedCommand 1",
        "@NoPromptForPassword 1",
        "@sSteamCmdForcePlatformType windows",
        f"force_install_dir {tmp_path / 'game'}",
        "login bob",
        "app_update 244210 validate",
        "quit",
    ]


def test_verify_script_persists_session(settings):
    script = _build(settings, OperationKind.VERIFY_CREDENTIALS, secret="pa ss;word")

    assert "@NoPromptForPassword 1" not in script.directives
    # Secrets go into the script verbatim; the tool does not use shell quoting.
    assert "login bob pa ss;word" in script.directives
    assert script.directives[-2:] == ["app_status 244210", "quit"]


def test_anonymous_login_has_no_secret(settings, tmp_path):
    script = _build(
        settings,
        OperationKind.FETCH_PRIMARY,
        username="anonymous",
        secret="unused",
        path=tmp_path,
    )

    assert "login anonymous" in script.directives


def test_redacted_script_hides_secret(settings):
    script = _build(settings, OperationKind.VERIFY_CREDENTIALS, secret="hunter2")

    assert "hunter2" not in script.redacted()
    assert "hunter2" not in repr(script)


def test_fetch_request_requires_install_path():
    with pytest.raises(ValidationError):
        AcquisitionRequest(kind=OperationKind.FETCH_PRIMARY, identity=Identity(username="bob"))


def test_blank_username_rejected():
    with pytest.raises(ValidationError):
        Identity(username="   ")


def test_guard_code_must_precede_login():
    with pytest.raises(ValidationError):
        ScriptSpec(
            kind=OperationKind.FETCH_PRIMARY,
            directives=["login bob pw", "set_steam_guard_code X", "quit"],
        )
