"""Shared fixtures for queue and uploader tests."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from surveycam.sync import (
    ApiError,
    EntryStatus,
    PhotoDraft,
    ProjectApiClient,
    QueueStore,
    SqliteKeyValueStore,
    UploadQueue,
)


@pytest.fixture
def kv(tmp_path):
    """SQLite key-value store in a temporary directory."""
    store = SqliteKeyValueStore(tmp_path / "queue.db")
    yield store
    store.close()


@pytest.fixture
def store(kv):
    return QueueStore(kv)


@pytest.fixture
def queue(store):
    return UploadQueue(store)


@pytest.fixture
def photo_dir(tmp_path) -> Path:
    directory = tmp_path / "photos"
    directory.mkdir()
    return directory


@pytest.fixture
def make_draft(photo_dir):
    """Factory writing a small JPEG-ish file and returning a draft for it."""

    def factory(name: str = "photo", **overrides) -> PhotoDraft:
        path = photo_dir / f"{name}.jpg"
        path.write_bytes(b"\xff\xd8\xff\xe0" + name.encode())
        values = {
            "source_uri": str(path),
            "project_id": "proj_1",
            "project_name": "Smith Residence",
            "caption": name,
            "taken_at": "2026-10-19T09:30:00+00:00",
        }
        values.update(overrides)
        return PhotoDraft(**values)

    return factory


@pytest.fixture
def client():
    """API client double; every call succeeds unless a test says otherwise."""
    mock = AsyncMock(spec=ProjectApiClient)
    mock.create_update.return_value = "upd_1"
    mock.upload_survey_photo.return_value = {"success": True}
    return mock


@pytest.fixture
def fail_for_captions():
    """Factory for an upload_survey_photo side effect failing for given captions."""

    def factory(*captions: str):
        async def side_effect(project_id, update_id, **kwargs):
            if kwargs["fields"].get("caption") in captions:
                raise ApiError(500, f"Storage unavailable for {kwargs['fields']['caption']}")
            return {"success": True}

        return side_effect

    return factory


@pytest.fixture
def mark_uploaded():
    """Move a pending entry to uploaded along the allowed status edges."""

    def mark(queue: UploadQueue, entry_id: str) -> None:
        queue.update_photo(entry_id, status=EntryStatus.UPLOADING)
        queue.update_photo(entry_id, status=EntryStatus.UPLOADED)

    return mark


@pytest.fixture
def mark_failed():
    """Move a pending entry to failed, counting one attempt."""

    def mark(queue: UploadQueue, entry_id: str, error: str = "Upload failed") -> None:
        retry_count = queue.get(entry_id).retry_count + 1
        queue.update_photo(entry_id, status=EntryStatus.UPLOADING)
        queue.update_photo(
            entry_id, status=EntryStatus.FAILED, error=error, retry_count=retry_count
        )

    return mark
