"""surveycam CLI - command-line interface for the upload agent."""

import typer

from surveycam import __version__
from surveycam.cli_commands import config_app, queue_app, status_command
from surveycam.config import get_settings
from surveycam.logging import setup_logging

app = typer.Typer(
    name="surveycam",
    help="surveycam - queue site survey photos and upload them to project timelines.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"surveycam-agent {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """surveycam - site survey photo upload agent."""
    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_path)


app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
