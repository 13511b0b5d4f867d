"""Main Typer application — imports and registers all CLI commands.

Entry point: ``servewatch`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from servewatch.cli.commands.check_cmd import check_cmd
from servewatch.cli.commands.probe_cmd import probe_cmd
from servewatch.cli.commands.run_cmd import run_cmd
from servewatch.cli.commands.show_cmd import show_cmd

app = typer.Typer(
    name="servewatch",
    help="servewatch: launch an inference server and supervise it until it is ready and beyond.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Launch the server and supervise it.")(run_cmd)
app.command(name="probe", help="Probe the health endpoint once.")(probe_cmd)
app.command(name="check", help="Check launch preconditions.")(check_cmd)
app.command(name="command", help="Show the composed launch command.")(show_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
