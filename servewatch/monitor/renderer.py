"""Rich terminal renderer for supervisor status and outcomes.

Color scheme
------------
- green     : RUNNING, healthy
- yellow    : LAUNCHING / AWAITING_*, unknown health
- red       : STOPPED via an error path, unhealthy
- dim       : NOT_STARTED, STOPPED after a clean shutdown
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from servewatch.models.health import HealthState
from servewatch.models.outcome import ExitCode, SupervisorOutcome
from servewatch.models.phases import SupervisorPhase
from servewatch.monitor.status import StatusSnapshot

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_PHASE_STYLES: dict[SupervisorPhase, str] = {
    SupervisorPhase.NOT_STARTED: "dim",
    SupervisorPhase.LAUNCHING: "yellow",
    SupervisorPhase.AWAITING_LOG_SIGNAL: "yellow",
    SupervisorPhase.AWAITING_HEALTHY: "bold yellow",
    SupervisorPhase.RUNNING: "bold green",
    SupervisorPhase.SHUTTING_DOWN: "magenta",
    SupervisorPhase.STOPPED: "dim",
}

_HEALTH_ICONS: dict[HealthState, str] = {
    HealthState.UNKNOWN: "[dim]UNKNOWN[/dim]",
    HealthState.HEALTHY: "[green]HEALTHY[/green]",
    HealthState.UNHEALTHY: "[bold red]UNHEALTHY[/bold red]",
}


class StatusRenderer:
    """Renders ``StatusSnapshot`` and ``SupervisorOutcome`` as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def render_status(self, snapshot: StatusSnapshot) -> Panel:
        """Render a snapshot as a Panel holding a details table and history."""
        style = _PHASE_STYLES.get(snapshot.phase, "")
        if snapshot.fatal_reason is not None:
            style = "bold red"

        table = Table(show_header=False, expand=True, pad_edge=True)
        table.add_column("Field", style="bold cyan", width=16)
        table.add_column("Value")

        table.add_row("Phase", f"[{style}]{snapshot.phase.value}[/{style}]")
        table.add_row("PID", str(snapshot.pid) if snapshot.pid else "[dim]-[/dim]")
        table.add_row("Health", _HEALTH_ICONS.get(snapshot.health, snapshot.health.value))
        table.add_row("Endpoint", Text(snapshot.endpoint))
        table.add_row("Log", Text(str(snapshot.log_path)))
        readiness = ", ".join(e.value for e in snapshot.readiness_events)
        table.add_row("Readiness", readiness or "[dim]none yet[/dim]")

        probes = f"{snapshot.probe_attempts}"
        if snapshot.consecutive_failures:
            probes += f" [red]({snapshot.consecutive_failures} failing)[/red]"
        table.add_row("Probes", probes)
        if snapshot.last_probe is not None:
            last = Text(f"{snapshot.last_probe.detail} ")
            last.append(f"{snapshot.last_probe.latency_ms:.0f} ms", style="dim")
            table.add_row("Last probe", last)
        if snapshot.transient_errors:
            table.add_row("Log errors", f"[yellow]{snapshot.transient_errors}[/yellow]")
        if snapshot.fatal_reason is not None:
            table.add_row("Fatal", f"[bold red]{snapshot.fatal_reason.value}[/bold red]")

        history = Text()
        for transition in snapshot.transitions:
            history.append(f"{transition.at.strftime('%H:%M:%S')} ", style="dim")
            history.append(transition.label)
            if transition.reason:
                history.append(f"  {transition.reason}", style="dim")
            history.append("\n")

        return Panel(
            Group(table, Text(""), history),
            title="[bold]servewatch[/bold]",
            subtitle=f"Snapshot: {snapshot.taken_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="green" if snapshot.phase == SupervisorPhase.RUNNING else "blue",
            padding=(1, 2),
        )

    def print_status(self, snapshot: StatusSnapshot) -> None:
        self.console.print(self.render_status(snapshot))

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------

    def render_outcome(self, outcome: SupervisorOutcome) -> Panel:
        """Render the terminal outcome, including the log excerpt on failure."""
        # Message and hint carry exception text and paths: never markup.
        headline = Text()
        if outcome.is_fatal:
            headline.append(
                f"FATAL ({outcome.fatal_reason.value}, exit {int(outcome.exit_code)}): ",
                style="bold red",
            )
            headline.append(outcome.message)
            border = "red"
        elif outcome.exit_code == ExitCode.OK:
            headline.append(outcome.message, style="green")
            border = "green"
        else:
            headline.append(
                f"{outcome.message} (exit {int(outcome.exit_code)})", style="yellow"
            )
            border = "yellow"

        parts: list = [headline]
        if outcome.hint:
            parts.append(Text(outcome.hint, style="dim"))
        if outcome.diagnostics:
            parts.append(Text(""))
            parts.append(Text("Last log lines:", style="bold"))
            parts.append(Text("\n".join(outcome.diagnostics), style="dim"))

        return Panel(
            Group(*parts),
            title=f"[bold]Supervisor {outcome.phase.value}[/bold]",
            border_style=border,
            padding=(1, 2),
        )

    def print_outcome(self, outcome: SupervisorOutcome) -> None:
        self.console.print(self.render_outcome(outcome))
