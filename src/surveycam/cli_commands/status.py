"""Status command for surveycam CLI."""

import asyncio
import json

import typer

from surveycam.config import get_settings
from surveycam.engine.session import UploadSession


async def _collect_status(check_server: bool) -> dict:
    async with UploadSession(get_settings()) as session:
        status = session.get_status()
        if check_server:
            status["server_reachable"] = await session.client.check_server()
        return status


def status_command(
    check_server: bool = typer.Option(
        False,
        "--check-server",
        "-s",
        help="Also probe the server health endpoint",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show upload queue status.

    Displays how many photos are pending, uploaded and failed, and
    optionally whether the server can be reached.
    """
    status = asyncio.run(_collect_status(check_server))
    queue_stats = status["queue"]

    if output_json:
        typer.echo(json.dumps(status))
        return

    typer.echo("")
    typer.echo("surveycam Upload Queue")
    typer.echo("----------------------")
    typer.echo(f"Server: {status['server_url']}")
    if check_server:
        typer.echo(f"Reachable: {'yes' if status['server_reachable'] else 'no'}")
    typer.echo(f"Pending: {queue_stats['pending']}")
    typer.echo(f"Uploaded: {queue_stats['uploaded']}")
    if queue_stats["failed"] > 0:
        typer.echo(f"Failed: {queue_stats['failed']} (retry with: surveycam queue retry <id>)")
    typer.echo(f"Total: {queue_stats['total']}")
    typer.echo("")

    if queue_stats["pending"] > 0:
        typer.echo("Upload pending photos with: surveycam queue upload")
