"""``servewatch command`` — show the launch command the supervisor would run."""

from __future__ import annotations

import shlex

from rich.console import Console
from rich.markup import escape

from servewatch.config import ServeSettings

console = Console()


def show_cmd() -> None:
    """Print the composed command line and environment overrides."""
    settings = ServeSettings()
    spec = settings.build_launch_spec()

    console.print("[bold]Command:[/bold]")
    console.print(shlex.join(spec.argv), soft_wrap=True, highlight=False, markup=False)
    console.print()
    console.print("[bold]Environment overrides:[/bold]")
    for key, value in sorted(spec.env.items()):
        console.print(f"  [cyan]{escape(key)}[/cyan]={escape(value)}", highlight=False)
    console.print()
    console.print(f"[bold]Log sink:[/bold] {escape(str(spec.log_path))}")
    console.print(f"[bold]Health endpoint:[/bold] {escape(settings.health_url)}")
