"""surveycam - site survey photo capture and upload agent."""

__version__ = "0.1.0"
