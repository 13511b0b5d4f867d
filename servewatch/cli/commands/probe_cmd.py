"""``servewatch probe`` — run one health probe against the server.

Exits 0 when the endpoint answers 2xx, 1 otherwise.  Useful as a container
health check or for poking a server the supervisor left running.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from servewatch.config import ServeSettings
from servewatch.core.health import HealthPoller, health_url

console = Console()


def probe_cmd(
    url: Optional[str] = typer.Option(
        None, "--url", "-u", help="Full health URL (overrides host/port/path)."
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Server host."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port."),
    path: Optional[str] = typer.Option(None, "--path", help="Health endpoint path."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Probe timeout in seconds."
    ),
) -> None:
    """Probe the health endpoint once and report the result."""
    settings = ServeSettings()
    endpoint = url or health_url(
        host or settings.host,
        port or settings.port,
        path or settings.health_path,
    )

    with HealthPoller(endpoint, timeout=timeout or settings.probe_timeout) as poller:
        result = poller.probe_detailed()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Endpoint")
    table.add_column("State", justify="center", no_wrap=True)
    table.add_column("Detail")
    table.add_column("Latency", justify="right")

    state = "[green]HEALTHY[/green]" if result.healthy else "[bold red]UNHEALTHY[/bold red]"
    table.add_row(Text(endpoint), state, Text(result.detail), f"{result.latency_ms:.0f} ms")
    console.print(table)

    raise typer.Exit(code=0 if result.healthy else 1)
