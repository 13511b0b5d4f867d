"""servewatch CLI — Typer-based command-line interface.

Provides the ``servewatch`` command with subcommands for supervising a
server, probing its health endpoint, checking launch preconditions, and
showing the composed launch command.

All output uses Rich for formatted terminal display.
"""
