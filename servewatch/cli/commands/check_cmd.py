"""``servewatch check`` — verify launch preconditions without launching.

Reports the model artifact directory, the executable, and the log
directory.  Exits with the precondition exit code when any check fails.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from servewatch.config import ServeSettings
from servewatch.core.preconditions import run_precondition_checks
from servewatch.models.outcome import ExitCode

console = Console()


def check_cmd(
    model_path: Optional[Path] = typer.Option(
        None, "--model-path", "-m", help="Model artifact directory."
    ),
    executable: Optional[str] = typer.Option(
        None, "--executable", "-e", help="Server executable."
    ),
    log_path: Optional[Path] = typer.Option(
        None, "--log", "-l", help="Log sink path."
    ),
) -> None:
    """Check launch preconditions and print a report."""
    overrides = {"model_path": model_path, "executable": executable, "log_path": log_path}
    settings = ServeSettings(**{k: v for k, v in overrides.items() if v is not None})
    checks = run_precondition_checks(settings.build_launch_spec(), settings.model_path)

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Precondition", min_width=16)
    table.add_column("Status", width=10, justify="center")
    table.add_column("Details")

    all_ok = True
    for check in checks:
        status = "[green]OK[/green]" if check.ok else "[bold red]FAILED[/bold red]"
        if not check.ok:
            all_ok = False
        table.add_row(check.name, status, Text(check.detail))

    if all_ok:
        overall = "[bold green]Ready to launch.[/bold green]"
        border_style = "green"
    else:
        overall = "[bold red]Launch would fail.[/bold red]"
        border_style = "red"

    console.print()
    console.print(
        Panel(
            table,
            title="[bold]Launch Preconditions[/bold]",
            subtitle=overall,
            border_style=border_style,
            padding=(1, 2),
        )
    )
    console.print()

    if not all_ok:
        raise typer.Exit(code=int(ExitCode.PRECONDITION_FAILED))
