"""Configuration CLI commands."""

import json

import typer

from surveycam.config import get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration - view settings.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration."""
    settings = get_settings()

    config_data = {
        "server_url": settings.server_url,
        "api_token_set": bool(settings.api_token),
        "request_timeout": settings.request_timeout,
        "data_dir": str(settings.data_path),
        "queue_db": str(settings.queue_db_path),
        "queue_storage_key": settings.queue_storage_key,
        "log_level": settings.log_level,
        "log_file": str(settings.log_path) if settings.log_path else None,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        typer.echo("")
        typer.echo("surveycam Configuration")
        typer.echo("-----------------------")
        typer.echo(f"Server URL: {settings.server_url}")
        typer.echo(f"API token: {'set' if settings.api_token else 'not set'}")
        typer.echo(f"Request timeout: {settings.request_timeout}s")
        typer.echo(f"Data directory: {settings.data_path}")
        typer.echo(f"Queue database: {settings.queue_db_path}")
        typer.echo(f"Log level: {settings.log_level}")
        typer.echo("")
        typer.echo("Set values using environment variables with SURVEYCAM_ prefix")
        typer.echo("Example: SURVEYCAM_SERVER_URL=https://studio.example.com")
