"""In-memory upload queue with write-through persistence."""

from typing import Any, Callable

from surveycam.logging import log_photo_queued, log_status_change, queue_logger
from surveycam.sync.models import (
    EDITABLE_FIELDS,
    STATUS_TRANSITIONS,
    EntryStatus,
    PhotoDraft,
    QueueEntry,
    generate_entry_id,
)
from surveycam.sync.store import QueueStore


class UploadQueue:
    """Authoritative list of queued photos and their upload status.

    All changes to the list go through this class; every mutation is
    written to the QueueStore and reported to change callbacks. Entries
    handed out are copies, so callers can't change queue state behind
    its back.

    Besides the entries it exposes three observable values for UI
    collaborators: the id currently uploading, whether a batch is running,
    and batch progress (0-100).

    Example:
        queue = UploadQueue(QueueStore(SqliteKeyValueStore(path)))
        queue.load_from_storage()
        entry = queue.add_photo(PhotoDraft("/tmp/a.jpg", "p1", "Smith Residence"))
    """

    MAX_RETRIES = 3

    def __init__(self, store: QueueStore) -> None:
        """Initialize an empty queue.

        Args:
            store: Persistence target for the entry list
        """
        self._store = store
        self._log = queue_logger()

        self._entries: list[QueueEntry] = []
        self._current_upload_id: str | None = None
        self._is_uploading = False
        self._progress = 0

        self._change_callbacks: list[Callable[["UploadQueue"], None]] = []

    # --- Observable state ---

    @property
    def entries(self) -> list[QueueEntry]:
        """Copy of all entries in insertion order."""
        return [entry.copy() for entry in self._entries]

    @property
    def current_upload_id(self) -> str | None:
        """Id of the entry being transferred, if any."""
        return self._current_upload_id

    @property
    def is_uploading(self) -> bool:
        """Whether a batch upload is in progress."""
        return self._is_uploading

    @property
    def progress(self) -> int:
        """Batch progress from 0 to 100."""
        return self._progress

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: str) -> QueueEntry | None:
        """Return a copy of the entry with entry_id, or None."""
        index = self._index_of(entry_id)
        return self._entries[index].copy() if index is not None else None

    def pending(self) -> list[QueueEntry]:
        """Snapshot of pending entries in queue order."""
        return [e.copy() for e in self._entries if e.status == EntryStatus.PENDING]

    def get_stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with counts by status plus total
        """
        stats = {status.value: 0 for status in EntryStatus}
        for entry in self._entries:
            stats[entry.status.value] += 1
        stats["total"] = len(self._entries)
        return stats

    def on_change(self, callback: Callable[["UploadQueue"], None]) -> None:
        """Register callback for queue changes.

        Args:
            callback: Called with the queue after each mutation or change
                of the observable upload state
        """
        self._change_callbacks.append(callback)

    # --- Mutations ---

    def add_photo(self, draft: PhotoDraft) -> QueueEntry:
        """Append a new pending entry built from draft.

        Args:
            draft: Captured photo and its project/room association

        Returns:
            Copy of the created entry
        """
        entry = QueueEntry.from_draft(draft, self._new_id())
        self._entries = [*self._entries, entry]
        log_photo_queued(self._log, entry.id, entry.project_id, entry.room_id)
        self._commit()
        return entry.copy()

    def remove_photo(self, entry_id: str) -> bool:
        """Remove the entry with entry_id.

        Returns:
            True if an entry was removed
        """
        remaining = [e for e in self._entries if e.id != entry_id]
        removed = len(remaining) != len(self._entries)
        self._entries = remaining
        if removed:
            self._log.info("Photo removed", extra={"event": "photo_removed", "entry_id": entry_id})
        self._commit()
        return removed

    def update_photo(self, entry_id: str, **changes: Any) -> QueueEntry | None:
        """Merge changes into the entry with entry_id.

        Args:
            entry_id: Entry to change
            **changes: QueueEntry attributes to replace

        Returns:
            Copy of the updated entry, or None if no entry has entry_id

        Raises:
            ValueError: Unknown or read-only attribute, a retry count
                lower than the current one, or a status change that is not
                an edge of the upload state machine
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if "status" in changes:
            changes["status"] = EntryStatus(changes["status"])

        index = self._index_of(entry_id)
        if index is None:
            self._commit()
            return None

        current = self._entries[index]
        if changes.get("retry_count", current.retry_count) < current.retry_count:
            raise ValueError("retry_count cannot decrease")
        if "status" in changes:
            self._check_transition(current, changes["status"])

        updated = current.copy(**changes)
        entries = list(self._entries)
        entries[index] = updated
        self._entries = entries

        if updated.status != current.status:
            log_status_change(
                self._log, entry_id, current.status.value, updated.status.value
            )
        self._commit()
        return updated.copy()

    def clear_completed(self) -> int:
        """Remove every uploaded entry, keeping the order of the rest.

        Returns:
            Number of entries removed
        """
        remaining = [e for e in self._entries if e.status != EntryStatus.UPLOADED]
        removed = len(self._entries) - len(remaining)
        self._entries = remaining
        if removed:
            self._log.info(
                "Completed photos cleared",
                extra={"event": "completed_cleared", "count": removed},
            )
        self._commit()
        return removed

    def load_from_storage(self) -> int:
        """Replace the in-memory list with the persisted one.

        An entry persisted as uploading can't still be in flight after a
        restart and its remote outcome is unknown, so it comes back as
        pending.

        Returns:
            Number of entries loaded
        """
        loaded = []
        for entry in self._store.load():
            if entry.status == EntryStatus.UPLOADING:
                log_status_change(
                    self._log, entry.id, entry.status.value, EntryStatus.PENDING.value
                )
                entry = entry.copy(status=EntryStatus.PENDING)
            loaded.append(entry)

        self._entries = loaded
        self._current_upload_id = None
        self._is_uploading = False
        self._progress = 0
        self._log.info(
            "Queue loaded",
            extra={"event": "queue_loaded", "count": len(loaded)},
        )
        self._notify()
        return len(loaded)

    # --- Upload state, driven by PhotoUploader ---

    def set_current_upload(self, entry_id: str | None) -> None:
        """Set or clear the currently-uploading marker."""
        if self._current_upload_id != entry_id:
            self._current_upload_id = entry_id
            self._notify()

    def set_batch_state(self, in_progress: bool, progress: int = 0) -> None:
        """Set the batch flag and progress (clamped to 0-100)."""
        progress = max(0, min(100, int(progress)))
        if (self._is_uploading, self._progress) != (in_progress, progress):
            self._is_uploading = in_progress
            self._progress = progress
            self._notify()

    # --- Internals ---

    def _index_of(self, entry_id: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None

    def _check_transition(self, current: QueueEntry, status: EntryStatus) -> None:
        if status == current.status:
            return
        if status not in STATUS_TRANSITIONS[current.status]:
            raise ValueError(
                f"cannot move entry {current.id} from {current.status.value} to {status.value}"
            )
        if current.status == EntryStatus.FAILED and current.retry_count >= self.MAX_RETRIES:
            raise ValueError(f"entry {current.id} has reached the retry limit")
        if status == EntryStatus.UPLOADING and any(
            e.status == EntryStatus.UPLOADING for e in self._entries
        ):
            raise ValueError("another entry is already uploading")

    def _new_id(self) -> str:
        existing = {e.id for e in self._entries}
        entry_id = generate_entry_id()
        while entry_id in existing:
            entry_id = generate_entry_id()
        return entry_id

    def _commit(self) -> None:
        """Persist the current list and notify listeners."""
        self._store.save(self._entries)
        self._notify()

    def _notify(self) -> None:
        for callback in self._change_callbacks:
            try:
                callback(self)
            except Exception:
                self._log.exception("Queue change callback failed")
