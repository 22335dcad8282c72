"""Rich UI components for the CLI.

Why separate components:
- Keeps command functions free of rendering details.
- Lets `main` and `doctor` share the same panels and tables.
"""

from __future__ import annotations

from typing import Any, Mapping

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import Failure, Success


def print_banner(console: Console) -> None:
    """Print the welcome banner.

    Skipped by callers in `--json` mode so stdout stays machine-readable.
    """

    title = Text("acprov", style="bold cyan")
    subtitle = Text("SteamCMD acquisition • Cache mirror • Content provisioning", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def _format_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, Mapping):
        return ", ".join(f"{k}={_format_value(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(v) for v in value) or "-"
    return str(value)


def build_details_table(title: str, data: Mapping[str, Any]) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in data.items():
        table.add_row(key, _format_value(value))
    return table


def build_check_table(title: str) -> Table:
    """Three-column table used by diagnostics."""

    table = Table(title=title)
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")
    return table


def build_asset_counts_table(counts: Mapping[str, Any]) -> Table:
    table = Table(title="Assets")
    table.add_column("Class", style="cyan", no_wrap=True)
    table.add_column("Count", style="white", justify="right")
    for name, value in counts.items():
        table.add_row(name, _format_value(value))
    return table


def build_outcome_panel(outcome: Success | Failure) -> Panel:
    """Panel for a classified outcome: message, then remediation or details."""

    body = Text()
    body.append(outcome.message.strip() or "(no message)")
    if isinstance(outcome, Failure):
        body.append(f"\n\nKind: {outcome.kind.value}", style="bold")
        body.append(f"\nFix: {outcome.remediation}", style="yellow")
        if outcome.excerpt:
            body.append("\n\nTool output:\n", style="bold")
            body.append(outcome.excerpt, style="dim")
        return Panel(body, title=Text("Failed", style="bold red"), border_style="red")

    details = {k: v for k, v in outcome.details.items() if k != "asset_counts"}
    if details:
        body.append("\n")
        for key, value in details.items():
            body.append(f"\n{key}: ", style="cyan")
            body.append(_format_value(value))
    return Panel(body, title=Text("Done", style="bold green"), border_style="green")
