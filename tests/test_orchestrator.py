from __future__ import annotations

import shutil
from pathlib import Path

from core.domain.errors import ErrorKind
from core.domain.models import ExecutionResult, Failure, Success
from core.services.binary_locator import BinaryLocator
from core.services.orchestrator import Orchestrator, OrchestratorHooks, OrchestratorState

from conftest import FakeCommandRunner, FakeScriptRunner, make_tree, tool_output

GAME_CONTENT = "steamapps/common/assettocorsa/content"


def _write_artifact(target):
    def write(script):
        if script.kind.is_fetch:
            (target / "acServer").write_text("bin", encoding="utf-8")

    return write


# ----------------------------------------------------------------------
# fetch primary
# ----------------------------------------------------------------------


def test_tool_not_found_never_runs_anything(make_orchestrator, commands, tmp_path):
    runner = FakeScriptRunner()
    orchestrator = make_orchestrator(runner, tool_installed=False)

    outcome = orchestrator.fetch_primary(tmp_path / "acserver", "anonymous")

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.TOOL_NOT_FOUND
    assert runner.scripts == []
    assert commands.calls == []


def test_anonymous_fetch_primary_success(make_orchestrator, commands, tmp_path):
    target = tmp_path / "acserver"
    runner = FakeScriptRunner(
        tool_output("Logged in OK\nSuccess! App '302550' fully installed."),
        on_run=_write_artifact(target),
    )

    outcome = make_orchestrator(runner).fetch_primary(target, "anonymous")

    assert isinstance(outcome, Success)
    assert outcome.details["version"] == "AssettoCorsa Server v1.16"
    assert outcome.details["path"] == str(target)
    assert runner.kinds == ["fetch-primary"]
    assert "login anonymous" in runner.scripts[0].directives
    # Initialization ran before the fetch.
    assert commands.calls[0][1:] == ["+login", "anonymous", "+quit"]


def test_fetch_primary_uses_cached_session_when_no_secret(make_orchestrator, tmp_path):
    target = tmp_path / "acserver"
    runner = FakeScriptRunner(
        tool_output("Logged in OK"),
        tool_output("Logged in OK"),
        on_run=_write_artifact(target),
    )

    outcome = make_orchestrator(runner).fetch_primary(target, "bob")

    assert isinstance(outcome, Success)
    assert runner.kinds == ["probe-session", "fetch-primary"]
    assert "login bob" in runner.scripts[1].directives


def test_fetch_primary_without_session_or_secret_needs_credentials(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(tool_output("FAILED login with result code Invalid Password"))

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "bob")

    assert outcome.kind is ErrorKind.CREDENTIALS_REQUIRED
    assert runner.kinds == ["probe-session"]


def test_empty_username_needs_credentials(make_orchestrator, tmp_path):
    runner = FakeScriptRunner()

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "  ")

    assert outcome.kind is ErrorKind.CREDENTIALS_REQUIRED
    assert runner.scripts == []


def test_fetch_primary_classified_login_failure(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(
        tool_output("FAILED login with result code Invalid Password", exit_code=5)
    )

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "bob", "wrong")

    assert outcome.kind is ErrorKind.INVALID_PASSWORD


def test_fetch_primary_missing_artifact_after_clean_exit(make_orchestrator, tmp_path):
    outcome = make_orchestrator(FakeScriptRunner()).fetch_primary(tmp_path / "acserver", "anonymous")

    assert isinstance(outcome, Failure)
    assert "acServer was not found" in outcome.message


def test_unrecognized_failure_with_nonzero_exit(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(tool_output("Segmentation fault", exit_code=139))

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "anonymous")

    assert outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE
    assert outcome.excerpt == "Segmentation fault"


def test_timeout_without_specific_marker(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(ExecutionResult(timed_out=True, stdout="Logged in OK", elapsed_seconds=600))

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "anonymous")

    assert outcome.kind is ErrorKind.TIMEOUT


def test_timeout_keeps_specific_failure(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(ExecutionResult(timed_out=True, stdout="(No subscription)"))

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "anonymous")

    assert outcome.kind is ErrorKind.OWNERSHIP_MISSING


def test_missing_executable_at_run_time(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(ExecutionResult(error="No such file", missing_executable=True))

    outcome = make_orchestrator(runner).fetch_primary(tmp_path / "acserver", "anonymous")

    assert outcome.kind is ErrorKind.TOOL_NOT_FOUND


def test_corruption_clears_cache_and_partial_download(make_orchestrator, settings, tmp_path):
    target = tmp_path / "game"
    make_tree(settings.tool_home, "steamapps/downloading/244210/chunk", "appcache/appinfo.vdf")
    runner = FakeScriptRunner(
        tool_output("Logged in OK"),
        tool_output("Update state (0x61) downloading\nbad chunk\nNo subscription"),
        on_run=lambda script: make_tree(target, "partial.bin"),
    )

    outcome = make_orchestrator(runner).fetch_secondary(target, "bob")

    assert outcome.kind is ErrorKind.DOWNLOAD_CORRUPTED
    assert outcome.details["cache_cleared"] is True
    assert not target.exists()
    assert list((settings.tool_home / "appcache").iterdir()) == []
    assert list((settings.tool_home / "steamapps" / "downloading").iterdir()) == []


def test_state_transitions_are_reported(settings, commands, tmp_path):
    seen: list[OrchestratorState] = []
    target = tmp_path / "acserver"
    orchestrator = Orchestrator(
        settings,
        commands=commands,
        script_runner=FakeScriptRunner(tool_output("Logged in OK"), on_run=_write_artifact(target)),
        locator=BinaryLocator(settings, which=lambda name: "/usr/games/steamcmd"),
        hooks=OrchestratorHooks(state_changed=lambda op, state: seen.append(state)),
    )

    orchestrator.fetch_primary(target, "bob", "secret")

    assert seen == [
        OrchestratorState.LOCATING_STRATEGY,
        OrchestratorState.AUTHENTICATING,
        OrchestratorState.TRANSFERRING,
        OrchestratorState.VERIFYING,
        OrchestratorState.DONE,
    ]


# ----------------------------------------------------------------------
# credentials
# ----------------------------------------------------------------------


def test_verify_credentials_success(make_orchestrator, settings):
    runner = FakeScriptRunner(tool_output("Logging in user 'bob'...OK\nWaiting for user info...OK"))

    outcome = make_orchestrator(runner).verify_credentials("bob", "pw", "ABCDE")

    assert isinstance(outcome, Success)
    assert outcome.details == {"username": "bob", "session_cached": True}
    assert runner.scripts[0].directives[1] == "set_steam_guard_code ABCDE"
    assert settings.tool_link_dir.is_dir()


def test_verify_credentials_requires_password(make_orchestrator):
    runner = FakeScriptRunner()

    outcome = make_orchestrator(runner).verify_credentials("bob", None)

    assert outcome.kind is ErrorKind.CREDENTIALS_REQUIRED
    assert runner.scripts == []


def test_verify_credentials_login_before_kill_is_success(make_orchestrator):
    runner = FakeScriptRunner(
        ExecutionResult(stdout="Logging in user 'bob'...\nLogged in OK\n", timed_out=True, elapsed_seconds=30)
    )

    outcome = make_orchestrator(runner).verify_credentials("bob", "pw")

    assert isinstance(outcome, Success)
    assert outcome.details["session_cached"] is True


def test_verify_credentials_killed_without_login_is_timeout(make_orchestrator):
    runner = FakeScriptRunner(ExecutionResult(stdout="Steam>", timed_out=True, elapsed_seconds=30))

    outcome = make_orchestrator(runner).verify_credentials("bob", "pw")

    assert outcome.kind is ErrorKind.TIMEOUT


def test_verify_credentials_unknown_output_is_failure(make_orchestrator):
    runner = FakeScriptRunner(tool_output("Steam>"))

    outcome = make_orchestrator(runner).verify_credentials("bob", "pw")

    assert outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE


def test_verify_credentials_guard_required(make_orchestrator):
    runner = FakeScriptRunner(
        tool_output("Logging in user 'bob'...\nThis computer has not been authenticated for your account using Steam Guard.")
    )

    outcome = make_orchestrator(runner).verify_credentials("bob", "pw")

    assert outcome.kind is ErrorKind.GUARD_CODE_REQUIRED


# ----------------------------------------------------------------------
# secondary payload
# ----------------------------------------------------------------------


def test_fetch_secondary_with_cached_session(make_orchestrator, tmp_path):
    target = tmp_path / "game"
    runner = FakeScriptRunner(
        tool_output("Logged in OK"),
        tool_output("Logged in OK\nSuccess! App '244210' fully installed."),
        on_run=lambda script: make_tree(
            target, f"{GAME_CONTENT}/cars/a/", f"{GAME_CONTENT}/cars/b/", f"{GAME_CONTENT}/tracks/c/"
        ),
    )

    outcome = make_orchestrator(runner).fetch_secondary(target, "bob")

    assert isinstance(outcome, Success)
    assert outcome.details["asset_counts"] == {"cars": 2, "tracks": 1}
    assert outcome.details["content_path"] == str(target / GAME_CONTENT)
    assert outcome.details["session_cached"] is True
    assert runner.scripts[1].directives[4] == "login bob"


def test_fetch_secondary_without_session_uses_secret(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(tool_output("FAILED login"), tool_output("Logged in OK"))

    outcome = make_orchestrator(runner).fetch_secondary(tmp_path / "game", "bob", "pw")

    assert "login bob pw" in runner.scripts[1].directives
    # Nothing landed on disk.
    assert isinstance(outcome, Failure)
    assert "Content not found" in outcome.message


def test_fetch_secondary_without_session_or_secret(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(tool_output("FAILED login"))

    outcome = make_orchestrator(runner).fetch_secondary(tmp_path / "game", "bob")

    assert outcome.kind is ErrorKind.CREDENTIALS_REQUIRED


def test_fetch_secondary_ownership_remediation(make_orchestrator, tmp_path):
    runner = FakeScriptRunner(
        tool_output("Logged in OK"),
        tool_output("ERROR! Failed to install app '244210' (No subscription)", exit_code=8),
    )

    outcome = make_orchestrator(runner).fetch_secondary(tmp_path / "game", "bob")

    assert outcome.kind is ErrorKind.OWNERSHIP_MISSING


def test_check_secondary_downloaded(make_orchestrator, tmp_path):
    make_tree(
        tmp_path,
        f"{GAME_CONTENT}/cars/a/",
        f"{GAME_CONTENT}/tracks/b/",
        "steamapps/common/assettocorsa/server/acServer.exe",
    )

    status = make_orchestrator().check_secondary_downloaded(tmp_path)

    assert status.installed is True
    assert status.server_found is True
    assert status.asset_counts == {"cars": 1, "tracks": 1}
    assert status.size == "16"


def test_check_secondary_not_downloaded(make_orchestrator, tmp_path):
    status = make_orchestrator().check_secondary_downloaded(tmp_path)

    assert status.installed is False
    assert status.asset_counts == {}


def test_cleanup_secondary_preserves_server(make_orchestrator, tmp_path):
    game = tmp_path / "game"
    make_tree(
        game,
        f"{GAME_CONTENT}/cars/a/data.acd",
        "steamapps/common/assettocorsa/server/acServer",
        "steamapps/common/assettocorsa/AssettoCorsa.exe",
        "steamapps/appmanifest_244210.acf",
    )

    outcome = make_orchestrator().cleanup_secondary(game)

    assert isinstance(outcome, Success)
    assert outcome.details["preserved_server"] is True
    assert outcome.details["freed_space"] == "48"
    root = game / "steamapps" / "common" / "assettocorsa"
    assert sorted(p.name for p in root.iterdir()) == ["server"]
    assert not (game / "steamapps" / "appmanifest_244210.acf").exists()


def test_cleanup_secondary_unknown_layout_removes_everything(make_orchestrator, tmp_path):
    game = tmp_path / "game"
    make_tree(game, "content/cars/a/data.acd")

    outcome = make_orchestrator().cleanup_secondary(game)

    assert outcome.details["preserved_server"] is False
    assert not game.exists()


# ----------------------------------------------------------------------
# content deletion
# ----------------------------------------------------------------------


def test_delete_assets_recreates_empty_directories(make_orchestrator, tmp_path):
    content = tmp_path / "acserver" / "content"
    make_tree(content, "cars/a/data.acd", "cars/b/data.acd", "tracks/monza/map.png")

    outcome = make_orchestrator().delete_assets(content, "cars")

    results = outcome.details["results"]
    assert results == {"cars": {"deleted": 2, "freed_space": "32"}}
    assert (content / "cars").is_dir()
    assert list((content / "cars").iterdir()) == []
    assert (content / "tracks" / "monza").is_dir()


def test_delete_assets_missing_class_reports_error(make_orchestrator, tmp_path):
    content = tmp_path / "acserver" / "content"
    make_tree(content, "cars/a/")

    outcome = make_orchestrator().delete_assets(content, "both")

    assert outcome.details["results"]["cars"]["deleted"] == 1
    assert outcome.details["results"]["tracks"]["error"] == "not found"


def test_delete_assets_unknown_selector_deletes_nothing(make_orchestrator, tmp_path):
    content = tmp_path / "acserver" / "content"
    make_tree(content, "cars/a/data.acd", "tracks/monza/map.png")

    outcome = make_orchestrator().delete_assets(content, "all")

    assert isinstance(outcome, Failure)
    assert outcome.details["selector"] == "all"
    assert "cars, tracks, both" in outcome.remediation
    assert (content / "cars" / "a" / "data.acd").is_file()
    assert (content / "tracks" / "monza" / "map.png").is_file()


# ----------------------------------------------------------------------
# tool lifecycle
# ----------------------------------------------------------------------


def test_install_tool_falls_back_to_older_lib_package(make_orchestrator):
    def respond(argv: list[str]) -> ExecutionResult:
        if "lib32gcc-s1" in argv:
            return ExecutionResult(exit_code=100, stderr="E: Unable to locate package lib32gcc-s1")
        return ExecutionResult(exit_code=0)

    commands = FakeCommandRunner(respond)

    outcome = make_orchestrator(command_runner=commands).install_tool()

    assert isinstance(outcome, Success)
    assert ["apt-get", "install", "-y", "steamcmd", "lib32gcc1"] in commands.calls
    license_idx = commands.calls.index(["debconf-set-selections"])
    assert "I AGREE" in commands.inputs[license_idx]


def test_install_tool_failure_is_typed(make_orchestrator):
    commands = FakeCommandRunner(lambda argv: ExecutionResult(exit_code=1, stderr="dpkg: error"))

    outcome = make_orchestrator(command_runner=commands).install_tool()

    assert outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE
    assert len(commands.calls) == 1


def test_uninstall_tool_removes_state_dirs(make_orchestrator, settings):
    make_tree(settings.tool_home, "steamapps/x.bin")
    settings.tool_link_dir.mkdir()

    outcome = make_orchestrator().uninstall_tool()

    assert isinstance(outcome, Success)
    assert not settings.tool_home.exists()
    assert not settings.tool_link_dir.exists()
    assert outcome.details["freed_space"] == "16"


def test_uninstall_tool_reports_undeletable_state_dir(make_orchestrator, settings, monkeypatch):
    make_tree(settings.tool_home, "steamapps/x.bin")
    settings.tool_link_dir.mkdir()
    real_rmtree = shutil.rmtree

    def rmtree(path, *args, **kwargs):
        if Path(path) == settings.tool_home:
            raise PermissionError(13, "Permission denied", str(path))
        return real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(shutil, "rmtree", rmtree)

    outcome = make_orchestrator().uninstall_tool()

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE
    assert str(settings.tool_home) in outcome.details["failed"]
    assert outcome.details["removed"] == [str(settings.tool_link_dir)]
    assert settings.tool_home.exists()
