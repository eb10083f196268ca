"""Sync module for the persisted photo queue and its uploader."""

from surveycam.sync.client import ApiError, ProjectApiClient
from surveycam.sync.models import (
    BatchResult,
    EntryStatus,
    GpsCoordinates,
    PhotoDraft,
    QueueEntry,
)
from surveycam.sync.queue import UploadQueue
from surveycam.sync.store import QueueStore, SqliteKeyValueStore
from surveycam.sync.uploader import PhotoUploader

__all__ = [
    "ApiError",
    "BatchResult",
    "EntryStatus",
    "GpsCoordinates",
    "PhotoDraft",
    "PhotoUploader",
    "ProjectApiClient",
    "QueueEntry",
    "QueueStore",
    "SqliteKeyValueStore",
    "UploadQueue",
]
