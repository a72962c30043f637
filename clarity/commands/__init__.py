"""Command implementations invoked from the CLI."""
