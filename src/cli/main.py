"""acprov command line interface.

Each command maps one-to-one onto an `Orchestrator` operation and renders its
`Success`/`Failure` either as Rich panels or, with `--json`, as the raw model on
stdout. Exit code is 0 on success and 1 on failure, so the commands compose in
shell scripts.

Logs and spinners go to stderr; stdout only carries results.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler

from adapters.json_exporter import export_json, render_json
from adapters.update_check import check_for_updates
from cli import doctor
from cli.ui_components import (
    build_asset_counts_table,
    build_details_table,
    build_outcome_panel,
    print_banner,
)
from core.config import AppSettings
from core.domain.models import AssetSelector, Failure, Success
from core.services.orchestrator import Orchestrator, OrchestratorHooks

app = typer.Typer(
    no_args_is_help=True,
    help="Provision Assetto Corsa dedicated servers with SteamCMD.",
)
app.add_typer(doctor.app, name="doctor")

console = Console()
err_console = Console(stderr=True)

_STATE: dict[str, object] = {"save": None}

JsonFlag = typer.Option(False, "--json", help="Print the result as JSON.")
YesFlag = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt.")
UserOption = typer.Option(
    None,
    "--user",
    "-u",
    envvar="ACPROV_STEAM_USER",
    help="Steam account name (`anonymous` for credential-less downloads).",
)
PasswordOption = typer.Option(
    None,
    "--password",
    "-p",
    envvar="ACPROV_STEAM_PASSWORD",
    help="Steam password. Omit to rely on a cached session.",
)
GuardOption = typer.Option(None, "--guard-code", "-g", help="Steam Guard code.")
HostOption = typer.Option(None, "--host", help="Cache mirror host (defaults to settings).")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    save: Optional[Path] = typer.Option(
        None,
        "--save",
        help="Also write the result JSON to this file.",
    ),
) -> None:
    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    _STATE["save"] = save


def _orchestrator(settings: AppSettings | None = None) -> Orchestrator:
    return Orchestrator(settings or AppSettings())


def _run_with_status(label: str, call):
    """Run `call(orchestrator)` under a spinner that follows state transitions."""

    with err_console.status(label) as status:
        hooks = OrchestratorHooks(
            state_changed=lambda op, state: status.update(f"{label} [dim]({state.value})[/dim]")
        )
        orchestrator = Orchestrator(AppSettings(), hooks=hooks)
        return call(orchestrator)


def _save(model: BaseModel) -> None:
    save = _STATE.get("save")
    if isinstance(save, Path):
        export_json(model=model, output_path=save)
        err_console.print(f"[dim]Saved result to {save}[/dim]")


def _finish(outcome: Success | Failure, *, as_json: bool) -> None:
    _save(outcome)
    if as_json:
        typer.echo(render_json(outcome))
    else:
        console.print(build_outcome_panel(outcome))
        counts = outcome.details.get("asset_counts") if isinstance(outcome, Success) else None
        if counts:
            console.print(build_asset_counts_table(counts))
    raise typer.Exit(code=0 if outcome.ok else 1)


def _finish_report(model: BaseModel, *, ok: bool, title: str, as_json: bool) -> None:
    _save(model)
    if as_json:
        typer.echo(render_json(model))
    else:
        console.print(build_details_table(title, model.model_dump(mode="json")))
    raise typer.Exit(code=0 if ok else 1)


def _confirm(message: str, yes: bool) -> None:
    if not yes:
        typer.confirm(message, abort=True)


# ----------------------------------------------------------------------
# Tool
# ----------------------------------------------------------------------


@app.command("check-tool")
def check_tool(as_json: bool = JsonFlag) -> None:
    """Report whether SteamCMD is installed."""

    located = _orchestrator().locate_tool()
    if isinstance(located, Failure):
        _finish(located, as_json=as_json)
    _finish(
        Success(message="SteamCMD is installed", details={"installed": True, "path": str(located)}),
        as_json=as_json,
    )


@app.command("install-tool")
def install_tool(as_json: bool = JsonFlag) -> None:
    """Install SteamCMD with the system package manager."""

    _finish(_run_with_status("Installing SteamCMD", lambda o: o.install_tool()), as_json=as_json)


@app.command("uninstall-tool")
def uninstall_tool(as_json: bool = JsonFlag, yes: bool = YesFlag) -> None:
    """Remove SteamCMD and its local state directories."""

    _confirm("Remove SteamCMD and all of its cached data?", yes)
    _finish(_run_with_status("Uninstalling SteamCMD", lambda o: o.uninstall_tool()), as_json=as_json)


# ----------------------------------------------------------------------
# Dedicated server (primary payload)
# ----------------------------------------------------------------------


@app.command("install-server")
def install_server(
    path: Path = typer.Argument(..., help="Install directory for the dedicated server."),
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
    guard_code: Optional[str] = GuardOption,
    no_cache: bool = typer.Option(False, "--no-cache", help="Skip the cache mirror."),
    host: Optional[str] = HostOption,
    as_json: bool = JsonFlag,
) -> None:
    """Install the dedicated server, from the cache mirror when available."""

    outcome = _run_with_status(
        "Installing dedicated server",
        lambda o: o.install(
            path,
            user,
            password,
            guard_code,
            prefer_cache=not no_cache,
            cache_host=host,
        ),
    )
    _finish(outcome, as_json=as_json)


@app.command("fetch-server")
def fetch_server(
    path: Path = typer.Argument(..., help="Install directory for the dedicated server."),
    user: str = typer.Option(
        "anonymous",
        "--user",
        "-u",
        envvar="ACPROV_STEAM_USER",
        help="Steam account name.",
    ),
    password: Optional[str] = PasswordOption,
    guard_code: Optional[str] = GuardOption,
    as_json: bool = JsonFlag,
) -> None:
    """Download the dedicated server with SteamCMD."""

    outcome = _run_with_status(
        "Downloading dedicated server",
        lambda o: o.fetch_primary(path, user, password, guard_code),
    )
    _finish(outcome, as_json=as_json)


@app.command("check-server")
def check_server(path: Path = typer.Argument(...), as_json: bool = JsonFlag) -> None:
    """Check whether the dedicated server executable is present."""

    check = _orchestrator().check_primary_installed(path)
    _finish_report(check, ok=check.found, title="Dedicated server", as_json=as_json)


@app.command("uninstall-server")
def uninstall_server(
    path: Path = typer.Argument(...),
    as_json: bool = JsonFlag,
    yes: bool = YesFlag,
) -> None:
    """Delete a dedicated server installation."""

    _confirm(f"Delete {path} and everything in it?", yes)
    _finish(_orchestrator().uninstall_primary(path), as_json=as_json)


# ----------------------------------------------------------------------
# Cache mirror
# ----------------------------------------------------------------------


@app.command("check-cache")
def check_cache(host: Optional[str] = HostOption, as_json: bool = JsonFlag) -> None:
    """Check whether the cache mirror holds a server copy."""

    with err_console.status("Checking cache mirror"):
        descriptor = _orchestrator().check_remote_cache(host)
    _finish_report(descriptor, ok=descriptor.exists, title="Cache mirror", as_json=as_json)


@app.command("copy-from-cache")
def copy_from_cache(
    path: Path = typer.Argument(..., help="Install directory for the dedicated server."),
    host: Optional[str] = HostOption,
    as_json: bool = JsonFlag,
) -> None:
    """Copy the dedicated server from the cache mirror."""

    outcome = _run_with_status("Copying from cache", lambda o: o.copy_from_cache(path, host))
    _finish(outcome, as_json=as_json)


# ----------------------------------------------------------------------
# Base game (secondary payload)
# ----------------------------------------------------------------------


@app.command("verify-login")
def verify_login(
    user: str = typer.Option(..., "--user", "-u", envvar="ACPROV_STEAM_USER"),
    password: str = typer.Option(
        ...,
        "--password",
        "-p",
        envvar="ACPROV_STEAM_PASSWORD",
        prompt=True,
        hide_input=True,
    ),
    guard_code: Optional[str] = GuardOption,
    as_json: bool = JsonFlag,
) -> None:
    """Log in once so SteamCMD caches the session for later downloads."""

    outcome = _run_with_status(
        "Verifying Steam credentials",
        lambda o: o.verify_credentials(user, password, guard_code),
    )
    _finish(outcome, as_json=as_json)


@app.command("fetch-game")
def fetch_game(
    path: Path = typer.Argument(..., help="Download directory for the base game."),
    user: str = typer.Option(..., "--user", "-u", envvar="ACPROV_STEAM_USER"),
    password: Optional[str] = PasswordOption,
    guard_code: Optional[str] = GuardOption,
    as_json: bool = JsonFlag,
) -> None:
    """Download the base game (requires an account that owns it)."""

    outcome = _run_with_status(
        "Downloading base game",
        lambda o: o.fetch_secondary(path, user, password, guard_code),
    )
    _finish(outcome, as_json=as_json)


@app.command("check-game")
def check_game(path: Path = typer.Argument(...), as_json: bool = JsonFlag) -> None:
    """Check whether the base game is downloaded and has content."""

    status = _orchestrator().check_secondary_downloaded(path)
    _finish_report(status, ok=status.installed, title="Base game", as_json=as_json)


@app.command("extract-content")
def extract_content(
    game_path: Path = typer.Argument(..., help="Base game download directory."),
    content_path: Path = typer.Argument(..., help="Target server `content` directory."),
    as_json: bool = JsonFlag,
) -> None:
    """Copy server files, cars and tracks from the base game into a server."""

    outcome = _run_with_status(
        "Extracting content",
        lambda o: o.extract_assets(game_path, content_path),
    )
    _finish(outcome, as_json=as_json)


@app.command("cleanup-game")
def cleanup_game(
    path: Path = typer.Argument(...),
    as_json: bool = JsonFlag,
    yes: bool = YesFlag,
) -> None:
    """Delete the base game download, keeping its `server` directory."""

    _confirm(f"Delete the base game files under {path}?", yes)
    _finish(_orchestrator().cleanup_secondary(path), as_json=as_json)


@app.command("delete-content")
def delete_content(
    content_path: Path = typer.Argument(..., help="Server `content` directory."),
    what: AssetSelector = typer.Option(AssetSelector.BOTH, "--what", case_sensitive=False),
    as_json: bool = JsonFlag,
    yes: bool = YesFlag,
) -> None:
    """Empty the cars and/or tracks directories."""

    _confirm(f"Delete {what.value} under {content_path}?", yes)
    _finish(_orchestrator().delete_assets(content_path, what), as_json=as_json)


# ----------------------------------------------------------------------
# Misc
# ----------------------------------------------------------------------


@app.command("update-check")
def update_check(as_json: bool = JsonFlag) -> None:
    """Check GitHub for a newer acprov release."""

    status = check_for_updates(AppSettings())
    _finish_report(status, ok=status.error is None, title="Update check", as_json=as_json)


@app.command()
def banner() -> None:
    """Show the banner and the active configuration."""

    print_banner(console)
    settings = AppSettings()
    console.print(
        build_details_table(
            "Configuration",
            settings.model_dump(
                mode="json",
                include={"tool_name", "cache_host", "cache_path", "primary_app_id", "secondary_app_id"},
            ),
        )
    )


def run() -> None:
    app()


if __name__ == "__main__":
    run()
