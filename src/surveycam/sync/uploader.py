"""Sequential upload of queued survey photos."""

import asyncio
import json
import math
import time
from datetime import datetime

import httpx

from surveycam.logging import log_upload_failed, log_upload_success, sync_logger
from surveycam.sync.client import ApiError, ProjectApiClient
from surveycam.sync.files import get_file_info, read_file_bytes
from surveycam.sync.models import BatchResult, EntryStatus, QueueEntry
from surveycam.sync.queue import UploadQueue

DEFAULT_ERROR = "Upload failed"


def build_update_title(entry: QueueEntry) -> str:
    """Title of the update record created for an entry."""
    try:
        day = datetime.fromisoformat(entry.taken_at.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        day = entry.taken_at[:10]
    title = f"Site Survey - {day}"
    if entry.room_name:
        title = f"{title} ({entry.room_name})"
    return title


def build_update_description(entry: QueueEntry) -> str:
    return entry.caption or "1 photo from site survey"


def build_form_fields(entry: QueueEntry, update_id: str) -> dict[str, str]:
    """Multipart fields sent alongside the image.

    Optional attributes are only sent when set; tags and coordinates are
    JSON-encoded.
    """
    fields = {"projectId": entry.project_id, "updateId": update_id}
    optional = {
        "caption": entry.caption,
        "notes": entry.notes,
        "roomId": entry.room_id,
        "customArea": entry.custom_area,
        "tradeCategory": entry.trade_category,
        "takenAt": entry.taken_at,
    }
    fields.update({key: value for key, value in optional.items() if value is not None})
    if entry.tags is not None:
        fields["tags"] = json.dumps(entry.tags)
    if entry.gps_coordinates is not None:
        fields["gpsCoordinates"] = json.dumps(entry.gps_coordinates.to_dict())
    return fields


def batch_progress(done: int, total: int) -> int:
    """Percentage of a batch completed, rounded half up."""
    return math.floor(done / total * 100 + 0.5)


class PhotoUploader:
    """Drains the upload queue one photo at a time.

    Each upload creates an update record on the project, then posts the
    image to that update. A failure in any step marks only that entry as
    failed; it never escapes to the caller, so a batch always runs through
    its snapshot.

    The update record is not deleted when the photo post fails. Its id is
    kept on the entry and logged so the orphan can be found.

    Example:
        uploader = PhotoUploader(queue, client)
        result = await uploader.upload_all()
        print(f"{result.uploaded} uploaded, {result.failed} failed")
    """

    def __init__(self, queue: UploadQueue, client: ProjectApiClient) -> None:
        """Initialize the uploader.

        Args:
            queue: Queue whose entries are uploaded
            client: API client used for the remote calls
        """
        self._queue = queue
        self._client = client
        self._log = sync_logger()
        self._stop_requested = False
        # Held for the duration of one transfer
        self._transfer_lock = asyncio.Lock()

    async def upload_photo(self, entry_id: str) -> bool:
        """Upload one pending entry, after any transfer already in flight.

        Returns:
            True if the photo was uploaded; False if it failed or the entry
            was not pending by the time its turn came
        """
        return await self._upload(entry_id) == EntryStatus.UPLOADED

    async def upload_all(self) -> BatchResult:
        """Upload every entry pending at call time, in queue order.

        Entries queued while the batch runs wait for the next call. A single
        upload already in flight finishes first; the batch then continues.
        Progress is published on the queue after each entry and reset to 0
        at the end.

        Returns:
            Counts of uploaded, failed and skipped entries
        """
        result = BatchResult()
        if self._queue.is_uploading:
            self._log.debug("Batch already running, ignoring upload_all")
            return result

        batch = self._queue.pending()
        if not batch:
            return result

        self._stop_requested = False
        self._queue.set_batch_state(True, 0)
        self._log.info(
            "Batch upload started",
            extra={"event": "batch_started", "count": len(batch)},
        )
        try:
            for done, entry in enumerate(batch, start=1):
                result.entry_ids.append(entry.id)
                if self._stop_requested:
                    result.skipped += 1
                    continue

                status = await self._upload(entry.id)
                if status == EntryStatus.UPLOADED:
                    result.uploaded += 1
                elif status == EntryStatus.FAILED:
                    result.failed += 1
                else:
                    result.skipped += 1

                self._queue.set_batch_state(True, batch_progress(done, len(batch)))
        finally:
            self._stop_requested = False
            self._queue.set_batch_state(False, 0)

        self._log.info(
            "Batch upload finished",
            extra={
                "event": "batch_finished",
                "uploaded": result.uploaded,
                "failed": result.failed,
                "skipped": result.skipped,
            },
        )
        return result

    async def retry_upload(self, entry_id: str) -> bool:
        """Return a failed entry to pending and upload it right away.

        Does nothing once the entry has failed MAX_RETRIES times, or when
        the entry isn't failed or another upload is in flight.

        Returns:
            True if the retried upload succeeded
        """
        entry = self._queue.get(entry_id)
        if entry is None or entry.status != EntryStatus.FAILED:
            return False
        if entry.retry_count >= UploadQueue.MAX_RETRIES:
            self._log.debug(
                "Retry limit reached",
                extra={"event": "retry_exhausted", "entry_id": entry_id},
            )
            return False
        if self._queue.current_upload_id is not None:
            return False

        self._queue.update_photo(entry_id, status=EntryStatus.PENDING, error=None)
        return await self.upload_photo(entry_id)

    def request_stop(self) -> None:
        """Stop the running batch after the entry in flight.

        Remaining entries of the batch stay pending.
        """
        if self._queue.is_uploading:
            self._stop_requested = True

    async def _upload(self, entry_id: str) -> EntryStatus | None:
        """Run one upload attempt, waiting for any transfer in flight.

        Returns:
            Final status of the entry, or None if no attempt was made
        """
        async with self._transfer_lock:
            return await self._transfer(entry_id)

    async def _transfer(self, entry_id: str) -> EntryStatus | None:
        entry = self._queue.get(entry_id)
        if entry is None or entry.status != EntryStatus.PENDING:
            return None
        if self._queue.current_upload_id not in (None, entry_id):
            return None

        self._queue.set_current_upload(entry_id)
        self._queue.update_photo(
            entry_id, status=EntryStatus.UPLOADING, error=None, update_id=None
        )
        started = time.monotonic()
        update_id: str | None = None
        try:
            update_id = await self._client.create_update(
                entry.project_id,
                title=build_update_title(entry),
                description=build_update_description(entry),
                room_id=entry.room_id,
                metadata={
                    "isInternal": True,
                    "source": "upload_queue",
                    "queueEntryId": entry.id,
                },
            )
            self._queue.update_photo(entry_id, update_id=update_id)

            info = await get_file_info(entry.source_uri)
            content = await read_file_bytes(info)

            await self._client.upload_survey_photo(
                entry.project_id,
                update_id,
                filename=info.path.name,
                content=content,
                content_type=info.content_type,
                fields=build_form_fields(entry, update_id),
            )
        except ApiError as e:
            status = self._mark_failed(entry_id, e.message, update_id)
        except httpx.TimeoutException as e:
            status = self._mark_failed(entry_id, f"Timeout: {e}", update_id)
        except httpx.ConnectError as e:
            status = self._mark_failed(entry_id, f"Connection error: {e}", update_id)
        except httpx.HTTPError as e:
            status = self._mark_failed(entry_id, f"HTTP error: {e}", update_id)
        except Exception as e:
            status = self._mark_failed(entry_id, str(e) or DEFAULT_ERROR, update_id)
        else:
            status = EntryStatus.UPLOADED
            self._queue.update_photo(entry_id, status=status, error=None)
            log_upload_success(
                self._log, entry_id, update_id, (time.monotonic() - started) * 1000
            )
        finally:
            self._queue.set_current_upload(None)
        return status

    def _mark_failed(
        self, entry_id: str, error: str, update_id: str | None
    ) -> EntryStatus:
        current = self._queue.get(entry_id)
        retry_count = (current.retry_count if current else 0) + 1
        self._queue.update_photo(
            entry_id,
            status=EntryStatus.FAILED,
            error=error or DEFAULT_ERROR,
            retry_count=retry_count,
        )
        log_upload_failed(self._log, entry_id, error, retry_count, update_id)
        return EntryStatus.FAILED
