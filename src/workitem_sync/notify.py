"""Notification surface for user-visible status messages."""

import typer


class EchoNotifier:
    """Print notifications on the terminal, for the CLI."""

    def notify(self, message: str) -> None:
        typer.echo(message)
