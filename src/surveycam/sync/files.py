"""Async access to local photo files."""

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse


@dataclass
class FileInfo:
    """Metadata of a local image file."""

    path: Path
    exists: bool
    size: int = 0

    @property
    def content_type(self) -> str:
        guessed, _ = mimetypes.guess_type(self.path.name)
        return guessed or "image/jpeg"


def resolve_source_uri(source_uri: str) -> Path:
    """Turn a plain path or file:// URI into a Path."""
    if source_uri.startswith("file://"):
        return Path(unquote(urlparse(source_uri).path))
    return Path(source_uri).expanduser()


def _stat(path: Path) -> FileInfo:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return FileInfo(path=path, exists=False)
    return FileInfo(path=path, exists=path.is_file(), size=stat.st_size)


async def get_file_info(source_uri: str) -> FileInfo:
    """Read existence and size of the file behind source_uri."""
    return await asyncio.to_thread(_stat, resolve_source_uri(source_uri))


async def read_file_bytes(info: FileInfo) -> bytes:
    """Read the whole file described by info.

    Raises:
        FileNotFoundError: The file does not exist
    """
    if not info.exists:
        raise FileNotFoundError(f"File not found: {info.path}")
    return await asyncio.to_thread(info.path.read_bytes)
