"""``servewatch run [COMMAND...]`` — launch and supervise the server.

Checks preconditions, launches the server, waits for its readiness log
signal and a healthy probe, then keeps probing until SIGINT/SIGTERM.  The
process exit code tells operators which fatal path was taken.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from servewatch.cli._logging import configure_logging
from servewatch.config import ServeSettings
from servewatch.core.coordinator import ShutdownCoordinator
from servewatch.core.health import HealthPoller
from servewatch.core.preconditions import PreconditionError, enforce_preconditions
from servewatch.core.supervisor import ProcessSupervisor
from servewatch.models.events import EventKind, SupervisorEvent
from servewatch.models.outcome import ExitCode
from servewatch.models.phases import SupervisorPhase
from servewatch.monitor.renderer import StatusRenderer
from servewatch.routing.dispatcher import SinkDispatcher
from servewatch.routing.sinks.journal_file import JournalFileSink
from servewatch.routing.sinks.logging_sink import LoggingSink

console = Console()


class _ReadyBannerSink:
    """Prints the status panel once the supervisor reaches RUNNING."""

    def __init__(self, renderer: StatusRenderer) -> None:
        self._renderer = renderer
        self.supervisor: ProcessSupervisor | None = None

    @property
    def sink_name(self) -> str:
        return "ready_banner"

    def accept(self, event: SupervisorEvent) -> None:
        if (
            event.kind == EventKind.PHASE
            and event.phase == SupervisorPhase.RUNNING
            and self.supervisor is not None
        ):
            self._renderer.print_status(self.supervisor.snapshot())


def build_settings(**overrides: Any) -> ServeSettings:
    """ServeSettings from env/.env with every non-None CLI override applied."""
    return ServeSettings(**{k: v for k, v in overrides.items() if v is not None})


def run_cmd(
    command: Optional[list[str]] = typer.Argument(
        None,
        help="Command to supervise verbatim (after '--').  Defaults to the "
        "configured 'vllm serve' command line.",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Server bind host."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port."),
    model_path: Optional[Path] = typer.Option(
        None, "--model-path", "-m", help="Model artifact directory."
    ),
    log_path: Optional[Path] = typer.Option(
        None, "--log", "-l", help="Log sink for the server's combined output."
    ),
    journal: Optional[Path] = typer.Option(
        None, "--journal", "-j", help="Append supervisor events to this JSONL file."
    ),
    log_wait_timeout: Optional[float] = typer.Option(
        None, "--log-wait-timeout", help="Seconds to wait for a readiness log line."
    ),
    health_wait_timeout: Optional[float] = typer.Option(
        None, "--health-wait-timeout", help="Seconds to wait for a healthy probe."
    ),
    startup_poll_interval: Optional[float] = typer.Option(
        None, "--startup-interval", help="Poll interval while starting up."
    ),
    steady_poll_interval: Optional[float] = typer.Option(
        None, "--steady-interval", help="Probe interval once running."
    ),
    no_sweep: bool = typer.Option(
        False, "--no-sweep", help="Skip the orphan sweep on shutdown."
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."
    ),
) -> None:
    """Launch the server and supervise it until interrupted."""
    try:
        settings = build_settings(
            host=host,
            port=port,
            model_path=model_path,
            log_path=log_path,
            journal_path=journal,
            log_wait_timeout=log_wait_timeout,
            health_wait_timeout=health_wait_timeout,
            startup_poll_interval=startup_poll_interval,
            steady_poll_interval=steady_poll_interval,
            orphan_sweep=False if no_sweep else None,
            log_level=log_level,
        )
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=int(ExitCode.PRECONDITION_FAILED))

    configure_logging(settings.log_level, console=console)

    spec = settings.build_launch_spec(command or None)
    # A verbatim command does not necessarily serve the configured model.
    required_model = None if command else settings.model_path
    try:
        enforce_preconditions(spec, required_model)
    except PreconditionError as exc:
        console.print(f"[bold red]Precondition failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=int(ExitCode.PRECONDITION_FAILED))

    renderer = StatusRenderer(console=console)
    banner = _ReadyBannerSink(renderer)
    dispatcher = SinkDispatcher()
    dispatcher.register_sink(LoggingSink())
    dispatcher.register_sink(banner)
    if settings.journal_path is not None:
        dispatcher.register_sink(JournalFileSink(settings.journal_path))

    with HealthPoller(settings.health_url, timeout=settings.probe_timeout) as poller:
        supervisor = ProcessSupervisor(
            spec,
            poller,
            settings.policy(),
            dispatcher=dispatcher,
        )
        banner.supervisor = supervisor
        with ShutdownCoordinator(supervisor.shutdown):
            outcome = supervisor.run()

    renderer.print_outcome(outcome)
    raise typer.Exit(code=int(outcome.exit_code))
