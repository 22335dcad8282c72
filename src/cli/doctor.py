"""Doctor command for environment diagnostics."""

from __future__ import annotations

import shutil

import typer
from rich.console import Console

from adapters.cache_mirror import CacheMirror
from adapters.update_check import check_for_updates
from cli.ui_components import build_check_table
from core.config import AppSettings, write_user_env_vars
from core.domain.models import Failure
from core.services.binary_locator import BinaryLocator

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


def _check_binary(name: str) -> tuple[bool, str]:
    found = shutil.which(name)
    return (True, found) if found else (False, "not on PATH")


@app.command()
def run(
    skip_network: bool = typer.Option(
        False,
        "--offline",
        help="Skip the cache mirror and GitHub checks.",
    ),
) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = build_check_table("acprov Doctor")

    located = BinaryLocator(settings).locate()
    if isinstance(located, Failure):
        table.add_row("SteamCMD", "FAIL", located.remediation)
        tool_ok = False
    else:
        table.add_row("SteamCMD", "OK", str(located))
        tool_ok = True

    for helper in ("ssh", "rsync"):
        ok, detail = _check_binary(helper)
        table.add_row(helper, "OK" if ok else "OPTIONAL", detail)

    table.add_row("Cache host", "OK", f"{settings.cache_user}@{settings.cache_host}:{settings.cache_path}")

    if not skip_network:
        descriptor = CacheMirror(settings).describe(with_stats=False)
        if descriptor.error:
            table.add_row("Cache mirror", "FAIL", descriptor.error)
        else:
            table.add_row(
                "Cache mirror",
                "OK" if descriptor.exists else "MISSING",
                "server copy present" if descriptor.exists else "no server copy; downloads use SteamCMD",
            )

        status = check_for_updates(settings)
        if status.error:
            table.add_row("Updates", "FAIL", status.error)
        elif status.update_available:
            table.add_row("Updates", "AVAILABLE", f"{status.current_version} -> {status.latest_version}")
        else:
            table.add_row("Updates", "OK", f"up to date ({status.current_version})")

    _console.print(table)

    if not tool_ok:
        _console.print(
            "\n[yellow]Note:[/yellow] Only `check-cache` and `copy-from-cache` work without SteamCMD."
        )


@app.command(name="set-cache")
def set_cache() -> None:
    """Interactive cache mirror setup (stores config in the user config .env)."""

    settings = AppSettings()
    host = typer.prompt("Cache host", default=settings.cache_host, show_default=True).strip()
    user = typer.prompt("SSH user", default=settings.cache_user, show_default=True).strip()
    path = typer.prompt("Remote path", default=settings.cache_path, show_default=True).strip()

    if not host or not user or not path:
        raise typer.BadParameter("host, user and path are required")

    env_path = write_user_env_vars(
        {
            "ACPROV_CACHE_HOST": host,
            "ACPROV_CACHE_USER": user,
            "ACPROV_CACHE_PATH": path,
        }
    )

    _console.print(f"[green]Saved cache config to:[/green] {env_path}")
