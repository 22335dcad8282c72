from __future__ import annotations

import json

from typer.testing import CliRunner

from adapters.update_check import UpdateStatus
from cli import main as cli_main

from conftest import make_tree

runner = CliRunner()


def test_delete_content_rejects_unsafe_path(tmp_path):
    saved = tmp_path / "result.json"

    result = runner.invoke(
        cli_main.app,
        ["--save", str(saved), "delete-content", "/opt", "--yes", "--json"],
    )

    assert result.exit_code == 1
    payload = json.loads(saved.read_text(encoding="utf-8"))
    assert payload["status"] == "failure"
    assert payload["kind"] == "UnsafeDestructivePath"


def test_check_server_missing_exits_non_zero(tmp_path):
    result = runner.invoke(cli_main.app, ["check-server", str(tmp_path), "--json"])

    assert result.exit_code == 1
    assert '"found": false' in result.stdout


def test_check_game_reports_counts(tmp_path):
    make_tree(tmp_path, "content/cars/a/", "content/cars/b/", "content/tracks/c/")
    saved = tmp_path / "game.json"

    result = runner.invoke(cli_main.app, ["--save", str(saved), "check-game", str(tmp_path)])

    assert result.exit_code == 0
    payload = json.loads(saved.read_text(encoding="utf-8"))
    assert payload["installed"] is True
    assert payload["asset_counts"] == {"cars": 2, "tracks": 1}


def test_delete_content_requires_confirmation(tmp_path):
    content = tmp_path / "acserver" / "content"
    make_tree(content, "cars/a/data.acd")

    result = runner.invoke(cli_main.app, ["delete-content", str(content)], input="n\n")

    assert result.exit_code != 0
    assert (content / "cars" / "a" / "data.acd").is_file()


def test_update_check_uses_release_status(monkeypatch):
    monkeypatch.setattr(
        cli_main,
        "check_for_updates",
        lambda settings: UpdateStatus(current_version="0.1.0", latest_version="0.2.0", update_available=True),
    )

    result = runner.invoke(cli_main.app, ["update-check", "--json"])

    assert result.exit_code == 0
    assert '"update_available": true' in result.stdout
