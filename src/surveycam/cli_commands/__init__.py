"""CLI command modules for the surveycam agent."""

from surveycam.cli_commands.config import config_app
from surveycam.cli_commands.queue import queue_app
from surveycam.cli_commands.status import status_command

__all__ = ["config_app", "queue_app", "status_command"]
