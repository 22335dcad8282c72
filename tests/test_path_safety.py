from __future__ import annotations

from pathlib import Path

import pytest

from core.domain.errors import ErrorKind, UnsafeDestructivePathError
from core.domain.models import Failure, Success
from core.services.path_safety import ensure_safe_destructive_path


@pytest.mark.parametrize("path", ["/", "/opt", "/opt/", "//", "", "/tmp", "abc", "/opt/x/.."])
def test_unsafe_paths_raise(path):
    with pytest.raises(UnsafeDestructivePathError) as excinfo:
        ensure_safe_destructive_path(path)

    assert excinfo.value.path == path.strip()


def test_well_formed_path_is_allowed():
    assert ensure_safe_destructive_path("/opt/acserver/install-42") == Path("/opt/acserver/install-42")


def test_trailing_separator_is_ignored():
    assert ensure_safe_destructive_path("/opt/acserver/") == Path("/opt/acserver")


@pytest.mark.parametrize("path", ["/", "/opt", "/tmp"])
def test_destructive_operations_reject_before_touching_anything(make_orchestrator, path):
    orchestrator = make_orchestrator()

    for outcome in (
        orchestrator.uninstall_primary(path),
        orchestrator.cleanup_secondary(path),
        orchestrator.delete_assets(path, "both"),
    ):
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.UNSAFE_DESTRUCTIVE_PATH


def test_uninstall_primary_deletes_safe_path(make_orchestrator, tmp_path):
    target = tmp_path / "acserver"
    (target / "cfg").mkdir(parents=True)
    (target / "acServer").write_bytes(b"\0" * 2048)

    outcome = make_orchestrator().uninstall_primary(target)

    assert isinstance(outcome, Success)
    assert outcome.details["freed_space"] == "2.0K"
    assert not target.exists()


def test_uninstall_primary_missing_directory_is_failure(make_orchestrator, tmp_path):
    outcome = make_orchestrator().uninstall_primary(tmp_path / "nope")

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.UNKNOWN_TOOL_FAILURE
    assert "does not exist" in outcome.message
