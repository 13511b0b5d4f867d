"""One module per ``servewatch`` subcommand."""
